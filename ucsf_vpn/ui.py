"""Interactive terminal prompts for ucsf-vpn."""

from InquirerPy import inquirer
from InquirerPy.validator import EmptyInputValidator

from ucsf_vpn.tokens import TOKEN_HELP, TokenKind, classify_token


class PromptUI:
    """Asks the user for credentials on the terminal."""

    def prompt_username(self) -> str:
        """Ask for the Active Directory username; asks again until it is non-empty."""
        username = ""
        while not username:
            answer = inquirer.text(
                message="Enter your UCSF Active Directory username:",
                validate=lambda text: bool(text.replace(" ", "")),
                invalid_message="Username must not be empty",
            ).execute()
            username = answer.replace(" ", "")
        return username

    def prompt_password(self) -> str:
        """Ask for the Active Directory password (masked). Returned as typed."""
        return inquirer.secret(
            message="Enter your UCSF Active Directory password:",
            validate=EmptyInputValidator("Password must not be empty"),
        ).execute()

    def prompt_token(self) -> str:
        """Ask for a one-time token or method (masked); empty means 'push'."""
        answer = inquirer.secret(
            message="Enter 'push' (default), 'phone', 'sms', a 6 or 7 digit token, or press your YubiKey:",
            validate=lambda text: not text.strip() or classify_token(text.replace(" ", "")) not in (
                TokenKind.UNKNOWN, TokenKind.DISABLED),
            invalid_message=f"Not a valid token ({TOKEN_HELP})",
        ).execute()
        return answer.replace(" ", "") or "push"
