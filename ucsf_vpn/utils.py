"""Utility functions for ucsf-vpn."""

import os
import subprocess
import sys
from typing import Any, List, Sequence, Tuple, Union

from yaspin import yaspin
from yaspin.spinners import Spinners


class Colors:
    """ANSI color codes for colored terminal output."""
    BLUE = "\033[94m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BRIGHT_YELLOW = "\033[33;1m"
    RED = "\033[91m"
    GRAY = "\033[90m"
    ENDC = "\033[0m"


# Output settings for the current invocation; set once by the CLI.
_output = {"verbose": False, "debug": False, "theme": "cli"}


def configure_output(verbose: bool = False, debug: bool = False, theme: str = "cli") -> None:
    """Set verbosity and theme for all print helpers."""
    _output["verbose"] = verbose or debug
    _output["debug"] = debug
    _output["theme"] = theme


def print_color(message: str, color: str, end: str = "\n") -> None:
    """Print a message in color to the terminal."""
    if _output["theme"] == "none":
        print(message, end=end)
    else:
        print(f"{color}{message}{Colors.ENDC}", end=end)


def print_debug(message: str) -> None:
    """Print a debug message in gray (only with --debug)."""
    if _output["debug"]:
        print_color(f"DEBUG: {message}", Colors.GRAY)


def print_info(message: str) -> None:
    """Print an informational message in blue (only with --verbose)."""
    if _output["verbose"]:
        print_color(f"INFO: {message}", Colors.BLUE)


def print_success(message: str) -> None:
    """Print a success message in green."""
    print_color(f"OK: {message}", Colors.GREEN)


def print_warning(message: str) -> None:
    """Print a warning message in yellow."""
    print_color(f"WARNING: {message}", Colors.YELLOW)


def print_note(message: str) -> None:
    """Print a note in bright yellow."""
    print_color(f"NOTE: {message}", Colors.BRIGHT_YELLOW)


def print_error(message: str) -> None:
    """Print an error message in red."""
    print_color(f"ERROR: {message}", Colors.RED)


def print_plain(message: str) -> None:
    """Print a message without prefix or color."""
    print(message)


def run_command(command: Union[str, Sequence[str]], check: bool = True, capture_output: bool = True,
                silent: bool = False, verbose: bool = False, **kwargs) -> Tuple[bool, Any]:
    """
    Wrapper for subprocess.run with error handling.

    Args:
        command: The command to run, either a shell string or an argument list
        check: Whether to check the return code
        capture_output: Whether to capture stdout/stderr
        silent: Whether to suppress error messages to console
        verbose: Whether to print the command being run and successful output
        **kwargs: Passed on to subprocess.run (e.g. input, stderr)
    """
    shell = isinstance(command, str)
    display = command if shell else " ".join(command)
    try:
        if verbose and not silent:
            print_debug(f"Running command: {display}")

        result = subprocess.run(
            command,
            shell=shell,
            text=True,
            capture_output=capture_output,
            check=check,
            **kwargs
        )
        if verbose and not silent and capture_output and result.stdout:
            print_debug(f"Command output:\n{result.stdout}")
        return True, result
    except subprocess.CalledProcessError as e:
        if not silent:
            print_error(f"Command failed: {display}")
            if e.stderr:
                print_error(f"Error output: {e.stderr}")
        return False, e
    except OSError as e:
        if not silent:
            print_error(f"Error executing command: {str(e)}")
        return False, e


def command_output(command: List[str]) -> str:
    """Return the stdout of a command, or an empty string if it fails."""
    success, result = run_command(command, check=True, silent=True)
    if not success:
        return ""
    return result.stdout


def with_spinner(text: str, success_message: str = None, fail_message: str = None):
    """
    Context manager to run a block with a spinner.

    Usage:
        with with_spinner("Doing something...", "All done."):
            do_the_thing()
    """
    class SpinnerWrapper:
        def __enter__(self):
            self.spinner = yaspin(Spinners.dots, text=text)
            if sys.stdout.isatty():
                self.spinner.start()
            else:
                print_info(text)
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            if sys.stdout.isatty():
                if exc_type is None:
                    self.spinner.ok("✓")
                    if success_message:
                        print_success(success_message)
                else:
                    self.spinner.fail("✗")
                    if fail_message:
                        print_error(fail_message)
            else:
                if exc_type is None:
                    if success_message:
                        print_success(success_message)
                else:
                    if fail_message:
                        print_error(fail_message)
            return False  # Don't suppress exceptions

    return SpinnerWrapper()


def xdg_config_path(environ=None) -> str:
    """Return (and create) the ucsf-vpn configuration directory."""
    environ = os.environ if environ is None else environ
    base = environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    path = os.path.join(base, "ucsf-vpn")
    os.makedirs(path, exist_ok=True)
    return path
