"""
KDP Insights - Error types

Every failure the import pipeline or the catalog can surface to the user.
"""


class KdpInsightsError(Exception):
    """Base class for all user-facing failures."""

    default_message = "Something went wrong."

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class EmptyFile(KdpInsightsError):
    default_message = "This report file is empty."


class NoDataRows(KdpInsightsError):
    default_message = "Report has no data rows."


class UnrecognizedColumns(KdpInsightsError):
    default_message = "Invalid report format. Required columns: Title, Royalty/Amount, and Date/Month."


class UnsupportedFileType(KdpInsightsError):
    default_message = "Unsupported file type. Please import a CSV or Excel (.xlsx/.xls) report."


class DuplicateImport(KdpInsightsError):
    default_message = "This report appears to be already imported. Duplicate import prevented."


class NoMatchingRows(KdpInsightsError):
    default_message = "No rows matched your portfolio books. Import aborted."


class ImportCancelled(KdpInsightsError):
    default_message = "Import cancelled. Unmatched titles were not mapped."


class InvalidBackupFormat(KdpInsightsError):
    default_message = "Invalid backup format."


class ValidationError(KdpInsightsError):
    default_message = "Please complete all required book fields."
