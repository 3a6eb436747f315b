def fmt_option_string(*options: str) -> str:
    """
    Join option tokens into the single string pg_ctl expects after ``-o``.
    Tokens are not quoted, so they must not contain whitespace.
    """
    return " ".join(options)
