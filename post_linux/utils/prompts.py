"""Interactive prompt utilities"""

from .logging import log_prompt, log_error


def prompt_yes_no(prompt, default='y'):
    """
    Interactive yes/no prompt

    Args:
        prompt: Question to ask
        default: Default answer ('y' or 'n')

    Returns:
        bool: True for yes, False for no
    """
    hint = "[Y/n]" if default == 'y' else "[y/N]"
    while True:
        log_prompt(f"{prompt} {hint}: ")
        response = input().strip()
        response = response or default

        if response.lower() in ['y', 'yes']:
            return True
        elif response.lower() in ['n', 'no']:
            return False
        else:
            log_error("Please answer yes or no.")


def prompt_choice(prompt, choices, default=None):
    """
    Interactive numbered multiple choice prompt

    Args:
        prompt: Question to ask
        choices: List of choice labels, printed as a numbered menu
        default: Default choice index (0-based)

    Returns:
        int: Index of selected choice
    """
    print(f"\n{prompt}:")
    for i, choice in enumerate(choices, 1):
        print(f"  {i}) {choice}")

    while True:
        if default is not None:
            log_prompt(f"Enter number [1-{len(choices)}, default: {default + 1}]: ")
        else:
            log_prompt(f"Enter number [1-{len(choices)}]: ")

        response = input().strip()

        if not response and default is not None:
            return default

        try:
            choice_num = int(response)
            if 1 <= choice_num <= len(choices):
                return choice_num - 1
            else:
                log_error(f"Please enter a number between 1 and {len(choices)}")
        except ValueError:
            log_error("Please enter a valid number")
