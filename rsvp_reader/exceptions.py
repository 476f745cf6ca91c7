class ReaderError(Exception):
    """Base class for errors raised while opening a book."""


class ContainerError(ReaderError):
    """The EPUB container could not be opened at all."""


class NoContentError(ReaderError):
    """The container opened but declares no reading-order sections."""


class SectionLoadError(ReaderError):
    """
    A single spine section could not be loaded or parsed.
    Recorded in the section result, never raised out of the parser.
    """

    def __init__(self, index: int, idref: str, reason: str):
        super().__init__(f"Section {index} ({idref}): {reason}")
        self.index = index
        self.idref = idref
        self.reason = reason
