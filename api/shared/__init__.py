"""
Shared pipeline for the neural network interpreter API.

This package contains the data-to-tensor preprocessing stages, the
architecture heuristic and the model backend used by the API endpoints.
"""
from .analyzer import DatasetDescriptor, TaskType, analyze_dataset
from .architecture import (
    ArchitectureRecommendation,
    LossKind,
    ModelSpec,
    recommend_architecture,
    recommend_for_dataset,
)
from .encoder import CategoricalPolicy, EncodedDataset, encode_dataset, encode_sample
from .errors import (
    EncodingError,
    ParseError,
    PipelineError,
    SchemaError,
    ShapeError,
    TrainingError,
)
from .ingest import RawTable, parse_csv
from .model_backend import FitConfig, ModelBackend, ModelHandle, SklearnMLPBackend
from .normalizer import NormalizationParams, fit_normalizer, normalize
from .pipeline import PreparedDataset, decode_prediction, prepare_dataset, prepare_input
from .reconciler import ReconciledTargets, reconcile_targets
from .splitter import SplitDataset, split_dataset
from .trainer import TrainingOutcome, train_model

__all__ = [
    "ArchitectureRecommendation",
    "CategoricalPolicy",
    "DatasetDescriptor",
    "EncodedDataset",
    "EncodingError",
    "FitConfig",
    "LossKind",
    "ModelBackend",
    "ModelHandle",
    "ModelSpec",
    "NormalizationParams",
    "ParseError",
    "PipelineError",
    "PreparedDataset",
    "RawTable",
    "ReconciledTargets",
    "SchemaError",
    "ShapeError",
    "SklearnMLPBackend",
    "SplitDataset",
    "TaskType",
    "TrainingError",
    "TrainingOutcome",
    "analyze_dataset",
    "decode_prediction",
    "encode_dataset",
    "encode_sample",
    "fit_normalizer",
    "normalize",
    "parse_csv",
    "prepare_dataset",
    "prepare_input",
    "recommend_architecture",
    "recommend_for_dataset",
    "reconcile_targets",
    "split_dataset",
    "train_model",
]
