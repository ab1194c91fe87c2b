"""Custom exceptions for the hippocampal T2 pipeline."""


class HippoT2Error(Exception):
    """Base exception for all hippocampal T2 errors."""
    pass


# Input validation

class MissingInputError(HippoT2Error):
    """A required input was not given."""

    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(
            f"Not all required inputs are set, missing: {', '.join(self.missing)}"
        )


class InputNotFoundError(HippoT2Error, FileNotFoundError):
    """A required input path does not reference an existing file."""

    def __init__(self, paths):
        self.paths = [str(p) for p in paths]
        super().__init__(f"Not all input files exist: {', '.join(self.paths)}")

    def __str__(self):
        return self.args[0]


# Processing

class ExternalToolFailure(HippoT2Error):
    """A delegated image-processing operation did not succeed."""

    def __init__(self, stage: str, operation: str, detail: str = ''):
        self.stage = stage
        self.operation = operation
        self.detail = detail.strip()
        message = f"{stage}: {operation} failed"
        if self.detail:
            message = f"{message} ({self.detail})"
        super().__init__(message)


class EmptyMaskError(HippoT2Error):
    """A corrected mask holds no voxels, so the mean T2 is undefined."""

    def __init__(self, hemisphere: str, image=None):
        self.hemisphere = hemisphere
        self.image = image
        super().__init__(f"No samples in {hemisphere} hippocampal mask")
