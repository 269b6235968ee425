"""Data subpackage: table loading, synthetic generators and preprocessing."""

from .generators import generate_synthetic, SyntheticConfig, SyntheticTables, synthetic_config_from_dict
from .preprocess import (
    OUTCOME_FAMILIES,
    StandardizationConfig,
    StandardizedDataset,
    binarize_at_median,
    center_y,
    exp_round_counts,
    prepare_dataset,
    select_response_column,
    standardize_X,
)
from .loaders import LoadedTables, align_tables, load_tables, read_table
