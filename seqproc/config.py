from dataclasses import dataclass, fields, MISSING, asdict
from pathlib import Path
from typing import Any, Dict, Optional, Set

import pyaml
import yaml

from seqproc.utils.log import Rlogger

__all__ = [
        'RunConfig',
]

logger = Rlogger().get_logger()


@dataclass
class RunConfig:
    """Settings of one seqproc run.

    A YAML file may hold any subset of the fields, for example::

        geom: 1{b[16]u[12]x:}2{r:}
        file1: data/sample_R1.fastq.gz
        file2: data/sample_R2.fastq.gz
        out1: out/sample_R1.fastq.gz
        out2: out/sample_R2.fastq.gz
        threads: 8
    """
    geom: str
    file1: str
    file2: str
    out1: str
    out2: str
    threads: int = 1
    chunk_size: int = 256
    log_level: str = "INFO"
    report: Optional[str] = None
    log_file: Optional[str] = None

    def __post_init__(self):
        if int(self.threads) < 1:
            raise ValueError(f"threads must be >= 1, got {self.threads}")
        if int(self.chunk_size) < 1:
            raise ValueError(f"chunk_size must be >= 1, got {self.chunk_size}")
        if self.log_level not in Rlogger.levels:
            raise ValueError(f"log_level must be one of {list(Rlogger.levels)}, got {self.log_level!r}")
        self.threads = int(self.threads)
        self.chunk_size = int(self.chunk_size)

    @classmethod
    def get_required_fields(cls) -> Set[str]:
        """Fields without defaults"""
        return {f.name for f in fields(cls) if f.default is MISSING and f.default_factory is MISSING}

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'RunConfig':
        """Create config from a dictionary, unknown keys are ignored"""
        field_names = {f.name for f in fields(cls)}
        ignored = set(config_dict) - field_names
        if ignored:
            logger.debug(f"ignoring unknown config keys: {sorted(ignored)}")

        filtered = {k: v for k, v in config_dict.items() if k in field_names and v is not None}
        missing = cls.get_required_fields() - set(filtered)
        if missing:
            raise ValueError(f"{cls.__name__} missing required config: {sorted(missing)}")
        return cls(**filtered)

    @staticmethod
    def read_yaml(conf_fn: str | Path) -> Dict[str, Any]:
        with open(conf_fn) as fh:
            conf = yaml.safe_load(fh) or {}
        if not isinstance(conf, dict):
            raise ValueError(f"Config file {conf_fn} must hold a mapping, found {type(conf).__name__}")
        return conf

    @classmethod
    def from_yaml(cls, conf_fn: str | Path, **overrides: Any) -> 'RunConfig':
        """Load a YAML file; non-``None`` ``overrides`` win over file values"""
        conf = cls.read_yaml(conf_fn)
        conf.update({k: v for k, v in overrides.items() if v is not None})
        return cls.from_dict(conf)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def dump(self) -> str:
        """Human readable YAML rendering"""
        return pyaml.dump(self.to_dict())
