"""
Masking of sensitive values in terminal output.
"""


def mask_api_key(api_key: str) -> str:
    """Show only the prefix and last four characters: "hak_***xyz1"."""
    if not api_key or len(api_key) < 8:
        return "***"
    return f"{api_key[:4]}***{api_key[-4:]}"


def mask_email(email: str) -> str:
    """Show only the first character and the domain: "d***@company.com"."""
    at_index = email.find("@")
    if at_index <= 0:
        return "***"
    return f"{email[0]}***{email[at_index:]}"
