"""Fragment types shared by all backends."""


class ErrorAnnotation(str):
    """A fragment reporting a failure as visible message text.

    Behaves as a plain string so it concatenates into the assistant
    message like any other fragment, while still letting the controller
    tell a failed generation from a completed one.
    """

    __slots__ = ()


def is_error_annotation(fragment: str) -> bool:
    return isinstance(fragment, ErrorAnnotation)
