"""
Error kinds raised by the dataset and training pipeline.

Every pipeline stage fails fast with one of these. The HTTP layer maps them
to responses through ``PipelineError.status_code`` (see ``main.py``).
"""


class PipelineError(Exception):
    """Base class for all pipeline failures."""

    kind = "pipeline_error"
    status_code = 400


class ParseError(PipelineError):
    """Malformed CSV structure (missing header, ragged row)."""

    kind = "parse_error"
    status_code = 400


class SchemaError(PipelineError):
    """Empty dataset, missing target column or unusable column layout."""

    kind = "schema_error"
    status_code = 422


class EncodingError(PipelineError):
    """A value could not be encoded (unknown label, non-numeric target)."""

    kind = "encoding_error"
    status_code = 422


class ShapeError(PipelineError):
    """Irreconcilable tensor shapes or a loss/target-shape mismatch."""

    kind = "shape_error"
    status_code = 409


class TrainingError(PipelineError):
    """Failure surfaced by the model backend, wrapped with pipeline context."""

    kind = "training_error"
    status_code = 500
