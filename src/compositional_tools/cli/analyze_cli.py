#!/usr/bin/env python3
"""
compositional_tools analysis command

Reads a filtered feature table and sample metadata, runs the full
compositional analysis and writes the result tables as CSV.
"""

import os
import sys
import time
import logging
import argparse
import traceback
from typing import Optional

import pandas as pd
from skbio import TreeNode

from compositional_tools.config import AnalysisConfig, DISTANCE_METHODS, TESTS, IMPORTANCE_METHODS
from compositional_tools.core.pipeline import run_full_analysis
from compositional_tools.core.tables import FeatureTable, SampleMetadata, aggregate_by_taxonomy
from compositional_tools.errors import CompositionalError, InvalidInputError
from compositional_tools.logger import setup_logger
from compositional_tools.utils.resource_utils import track_peak_memory

logger = logging.getLogger('compositional_tools')

COMMON_ID_COLS = ["SampleName", "Sample", "SampleID", "Sample_ID", "sample_name", "sample_id"]


def _read_table(path: str) -> pd.DataFrame:
    sep = "\t" if path.endswith((".tsv", ".txt")) else ","
    df = pd.read_csv(path, sep=sep, index_col=0)
    # Numeric OTU ids must still match tree tip names
    df.index = df.index.astype(str)
    return df


def read_feature_table(path: str, taxonomy_file: Optional[str] = None,
                       rank_col: Optional[str] = None) -> FeatureTable:
    """Feature table file (rows = features, columns = samples), optionally agglomerated."""
    df = _read_table(path)
    logger.info(f"Loaded feature table with {df.shape[0]} features and {df.shape[1]} samples")
    table = FeatureTable(df)
    if taxonomy_file:
        taxonomy = _read_table(taxonomy_file)
        col = rank_col or taxonomy.columns[0]
        if col not in taxonomy.columns:
            raise InvalidInputError(f"Rank column '{col}' not found in {taxonomy_file}")
        table = aggregate_by_taxonomy(table, taxonomy[col].astype(str).to_dict(), rank_name=col)
    return table


def read_metadata(path: str, group_col: str, sample_id_col: Optional[str] = None) -> SampleMetadata:
    """Metadata CSV with one row per sample; the sample id column is auto-detected if not given."""
    sep = "\t" if path.endswith((".tsv", ".txt")) else ","
    df = pd.read_csv(path, sep=sep)
    if not sample_id_col:
        for col in COMMON_ID_COLS:
            if col in df.columns:
                sample_id_col = col
                logger.info(f"Auto-detected sample ID column: {sample_id_col}")
                break
        if not sample_id_col:
            sample_id_col = df.columns[0]
            logger.warning(f"Could not auto-detect sample ID column, using the first column: {sample_id_col}")
    if sample_id_col not in df.columns:
        raise InvalidInputError(f"Sample ID column '{sample_id_col}' not found in metadata")
    df[sample_id_col] = df[sample_id_col].astype(str)
    return SampleMetadata(df.set_index(sample_id_col), group_col=group_col)


def write_results(results, output_dir: str):
    os.makedirs(output_dir, exist_ok=True)
    outputs = {
        "differential_abundance.csv": results.differential_abundance,
        "permanova.csv": results.permanova.to_series().to_frame(),
        "pca_scores.csv": results.ordination.scores,
        "pca_loadings.csv": results.ordination.loadings,
        "pca_explained_variance.csv": results.ordination.explained_variance_ratio.to_frame("explained_variance_ratio"),
        "confusion_matrix.csv": results.classifier.confusion_matrix,
    }
    for name, df in outputs.items():
        df.to_csv(os.path.join(output_dir, name))
    results.classifier.importances.to_csv(os.path.join(output_dir, "feature_importance.csv"), index=False)

    if results.posthoc:
        dunn_dir = os.path.join(output_dir, "dunn_posthoc_tests")
        os.makedirs(dunn_dir, exist_ok=True)
        for feat, pdf in results.posthoc.items():
            safe_feat = "".join(c if c.isalnum() or c in "-_." else "_" for c in str(feat))
            pdf.to_csv(os.path.join(dunn_dir, f"dunn_{safe_feat}.csv"))
        logger.info(f"Saved Dunn's post-hoc results for {len(results.posthoc)} features in {dunn_dir}")
    logger.info(f"Results written to {output_dir}")


def parse_args(argv=None):
    """Parse command line arguments for the analysis command."""
    parser = argparse.ArgumentParser(
        description="Compositional differential abundance, PERMANOVA, ordination and feature ranking",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Output Files:
  • differential_abundance.csv: per-feature statistic, p-value, BH q-value, effect size
  • permanova.csv: pseudo-F, R2 and permutation p-value
  • pca_scores.csv / pca_loadings.csv: CLR PCA biplot coordinates
  • confusion_matrix.csv / feature_importance.csv: random forest evaluation and ranking

Common Usage:
  compositional-tools --abundance-file counts.csv --metadata-file metadata.csv --seed 42
  compositional-tools --abundance-file counts.tsv --metadata-file metadata.csv --distance unifrac --tree tree.nwk
"""
    )
    parser.add_argument("--abundance-file", required=True,
                        help="Feature table (rows = features, columns = samples), CSV or TSV")
    parser.add_argument("--metadata-file", required=True,
                        help="Sample metadata CSV")
    parser.add_argument("--output-dir", default="./CompositionalAnalysis",
                        help="Directory for output files")
    parser.add_argument("--config", help="YAML configuration file; command-line options override it")
    parser.add_argument("--group-col", help="Column name in metadata for grouping samples")
    parser.add_argument("--sample-id-col",
                        help="Column name in metadata for sample IDs (autodetected if not specified)")
    parser.add_argument("--tree", help="Rooted Newick tree whose tips are the feature ids")
    parser.add_argument("--taxonomy-file", help="Feature -> rank label table for agglomeration")
    parser.add_argument("--rank-col", help="Column of the taxonomy file to agglomerate on")
    parser.add_argument("--distance", choices=DISTANCE_METHODS, help="Distance for PERMANOVA")
    parser.add_argument("--test", choices=TESTS, help="Per-feature test")
    parser.add_argument("--importance", choices=IMPORTANCE_METHODS, help="Feature importance method")
    parser.add_argument("--pseudocount", type=float, help="Pseudocount for the CLR transform")
    parser.add_argument("--mc-samples", type=int, help="Monte Carlo Dirichlet instances")
    parser.add_argument("--permutations", type=int, help="PERMANOVA permutations")
    parser.add_argument("--seed", type=int, help="Random seed for reproducibility")
    parser.add_argument("--threads", type=int, help="Worker processes")
    parser.add_argument("--alpha", type=float, default=0.05,
                        help="q-value threshold for post-hoc tests (default: 0.05)")
    parser.add_argument("--log-file", help="Path to log file")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                        help="Logging level")
    return parser.parse_args(argv)


def build_config(args) -> AnalysisConfig:
    values = AnalysisConfig.from_yaml(args.config).to_dict() if args.config else {}
    overrides = {
        "group_col": args.group_col,
        "distance_method": args.distance,
        "test": args.test,
        "importance": args.importance,
        "pseudocount": args.pseudocount,
        "mc_draws": args.mc_samples,
        "permutations": args.permutations,
        "random_seed": args.seed,
        "n_jobs": args.threads,
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return AnalysisConfig.from_dict(values)


@track_peak_memory
def run_analysis(args) -> int:
    config = build_config(args)
    logger.info(f"Configuration: {config.to_dict()}")

    for file_path, desc in [(args.abundance_file, "Abundance file"), (args.metadata_file, "Metadata file")]:
        if not os.path.exists(file_path):
            logger.error(f"ERROR: {desc} not found: {file_path}")
            return 1

    table = read_feature_table(args.abundance_file, args.taxonomy_file, args.rank_col)
    metadata = read_metadata(args.metadata_file, config.group_col, args.sample_id_col)
    tree = TreeNode.read(args.tree) if args.tree else None

    results = run_full_analysis(table, metadata, config, tree=tree, alpha=args.alpha)
    write_results(results, args.output_dir)
    return 0


def main(argv=None):
    """Main function to run the analysis."""
    args = parse_args(argv)

    log_level = getattr(logging, args.log_level.upper())
    setup_logger(args.log_file, log_level)

    logger.info("Starting compositional_tools analysis")
    start_time = time.time()

    try:
        status = run_analysis(args)
    except CompositionalError as e:
        logger.error(f"Analysis failed: {e}")
        return 1
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        logger.error(traceback.format_exc())
        return 1

    elapsed_time = time.time() - start_time
    minutes, seconds = divmod(elapsed_time, 60)
    logger.info(f"Total processing time: {int(minutes)}m {int(seconds)}s")
    return status


if __name__ == "__main__":
    sys.exit(main())
