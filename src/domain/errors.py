class PageStudioError(Exception):
    pass


class ValidationError(PageStudioError):
    pass


class LoadError(PageStudioError):
    pass


class IndexOutOfRange(PageStudioError, IndexError):
    pass


class UnknownIdentity(PageStudioError, KeyError):
    def __str__(self) -> str:
        return Exception.__str__(self)


class RenderCancelledError(PageStudioError):
    pass


class RenderError(PageStudioError):
    def __init__(self, identity: str, message: str) -> None:
        super().__init__(f"Render failed for page {identity}: {message}")
        self.identity = identity


class AssemblyError(PageStudioError):
    pass
