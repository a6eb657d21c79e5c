"""Input validation — checks that a builder prompt is a non-empty string before any request."""


def validate_prompt(prompt: str) -> str:
    """Validate that the prompt is a non-empty string.

    Returns the stripped input on success.
    Raises ValueError if input is empty or whitespace-only.
    """
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValueError("Prompt must be a non-empty string.")
    return prompt.strip()
