"""
Configuration management for Scene Rec.

Loads YAML configuration with sensible defaults for every stage of the
mixed-graph reconstruction.
"""

import os
from dataclasses import asdict, dataclass, field
from typing import Optional

import yaml


@dataclass
class PartitionConfig:
    """Configuration for region and line connected components."""
    overlap_threshold: float = 0.2
    min_junction_weight: float = 1e-5


@dataclass
class HypothesisConfig:
    """Configuration for plane and depth candidate generation."""
    dedup_tolerance: float = 0.001  # fraction of scene scale
    skew_ratio: float = 0.25  # plane roots closer than scale * ratio are rejected
    far_ratio: float = 5.0  # anchors projected farther than scale * ratio are rejected
    inlier_ratio: float = 0.1
    depth_vote_sigma: float = 0.01
    ignore_too_skewed: bool = True
    ignore_too_far: bool = True


@dataclass
class SpreadingConfig:
    """Configuration for the greedy spreading scheduler."""
    region_weight: float = 0.7
    line_weight: float = 0.29
    area_weight: float = 0.01
    min_inlier_area_ratio: float = 0.3
    poor_support_penalty: float = 1e-2
    seeding: str = "largest_line_cc"  # "largest_line_cc" or "none"


@dataclass
class RefineConfig:
    """Configuration for the global scale refinement."""
    enabled: bool = True
    max_anchors_per_edge: Optional[int] = 2
    min_row_weight: float = 1.0
    max_row_weight: float = 5.0


@dataclass
class RunConfig:
    """Configuration for subgraph scheduling."""
    max_workers: int = 1


@dataclass
class TracingConfig:
    """Configuration for runtime tracing."""
    enabled: bool = False
    level: str = "INFO"
    file_path: str = None
    json_output: bool = False


@dataclass
class ReconstructionConfig:
    """Complete reconstruction configuration."""
    partition: PartitionConfig = field(default_factory=PartitionConfig)
    hypothesis: HypothesisConfig = field(default_factory=HypothesisConfig)
    spreading: SpreadingConfig = field(default_factory=SpreadingConfig)
    refine: RefineConfig = field(default_factory=RefineConfig)
    run: RunConfig = field(default_factory=RunConfig)
    tracing: TracingConfig = field(default_factory=TracingConfig)


SECTIONS = ("partition", "hypothesis", "spreading", "refine", "run", "tracing")


def load_config(config_path=None):
    """
    Load configuration from YAML file.

    Falls back to defaults for any missing values.
    """
    config = ReconstructionConfig()

    if config_path and os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f) or {}

        config = _merge_config(config, yaml_data)

    return config


def _merge_config(config, yaml_data):
    """Merge YAML data into config dataclass."""
    for section in SECTIONS:
        if section not in yaml_data:
            continue
        target = getattr(config, section)
        for key, value in (yaml_data[section] or {}).items():
            if hasattr(target, key):
                setattr(target, key, value)

    return config


def save_default_config(path):
    """Save default configuration to YAML file for reference."""
    config = ReconstructionConfig()

    yaml_data = {section: asdict(getattr(config, section)) for section in SECTIONS}
    # file_path has no useful default to write out
    yaml_data["tracing"].pop("file_path", None)

    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(yaml_data, f, default_flow_style=False, sort_keys=False)
