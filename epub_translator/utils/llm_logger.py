"""
LLM logging utilities for debugging and transparency

Logs full backend interactions (prompts and responses) when DEBUG_MODE is enabled.
"""
import os
from typing import Optional

from epub_translator import config


def log_llm_interaction(
    system_prompt: Optional[str],
    user_prompt: str,
    raw_response: str,
    interaction_type: str = "batch",
    prefix: str = ""
):
    """
    Print the complete interaction when DEBUG_MODE is enabled.

    Args:
        system_prompt: The system prompt (role/instructions)
        user_prompt: The user prompt (content to translate)
        raw_response: Raw completion before cleanup and reconciliation
        interaction_type: "batch" or "single fragment"
        prefix: Optional prefix for log messages (e.g., document name)
    """
    if not config.DEBUG_MODE:
        return

    YELLOW = '\033[93m'
    ORANGE = '\033[38;5;214m'  # input sent to the backend
    GREEN = '\033[92m'         # output received
    GRAY = '\033[90m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'

    if os.environ.get('NO_COLOR'):
        YELLOW = ORANGE = GREEN = GRAY = ENDC = BOLD = ''

    separator = "=" * 80
    prefix_str = f"[{prefix}] " if prefix else ""

    print(f"\n{YELLOW}{BOLD}{separator}{ENDC}")
    print(f"{YELLOW}{BOLD}DEBUG: {prefix_str}LLM Interaction - {interaction_type.upper()}{ENDC}")
    print(f"{YELLOW}{BOLD}{separator}{ENDC}\n")

    if system_prompt:
        print(f"{ORANGE}{BOLD}System Prompt:{ENDC}")
        print(f"{GRAY}{'-' * 80}{ENDC}")
        print(f"{ORANGE}{system_prompt}{ENDC}")
        print(f"{GRAY}{'-' * 80}{ENDC}\n")

    print(f"{ORANGE}{BOLD}User Prompt:{ENDC}")
    print(f"{GRAY}{'-' * 80}{ENDC}")
    print(f"{ORANGE}{user_prompt}{ENDC}")
    print(f"{GRAY}{'-' * 80}{ENDC}\n")

    print(f"{GREEN}{BOLD}Raw Response:{ENDC}")
    print(f"{GRAY}{'-' * 80}{ENDC}")
    print(f"{GREEN}{raw_response}{ENDC}")
    print(f"{GRAY}{'-' * 80}{ENDC}\n")
