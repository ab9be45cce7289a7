import argparse
import sys
import time
from typing import List, Optional

from rich.console import Console

__all__ = [
        'main',
        'parse_args',
]

LOG_LEVELS = ["CRITICAL", "INFO", "IO", "STEP", "DEBUG"]


def parse_args():
    """Build the command line parser"""
    parser = argparse.ArgumentParser(
            prog="seqproc",
            description="General purpose paired-end read preprocessor driven by a geometry string")

    parser.add_argument("-g", "--geom", help="geometry string, e.g. '1{b[16]u[12]x:}2{r:}'")
    parser.add_argument("-1", "--file1", help="read 1 FASTQ file")
    parser.add_argument("-2", "--file2", help="read 2 FASTQ file")
    parser.add_argument("-o", "--out1", help="read 1 output FASTQ file")
    parser.add_argument("-w", "--out2", help="read 2 output FASTQ file")
    parser.add_argument("-t", "--threads", type=int, default=None, help="number of worker processes (default 1)")

    parser.add_argument("--chunk-size", type=int, default=None, help="records handed to a worker at once (default 256)")
    parser.add_argument("--config", help="YAML file with any of the above settings; flags override it")
    parser.add_argument("--report", help="write the per-operation filter report (.tsv or .parquet)")
    parser.add_argument("--log-file", help="also write the log to this file")

    parser.add_argument(
        "--log-level",
        default=None,
        choices=LOG_LEVELS,
        help="Logging level (default INFO)"
        )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="print the compiled operations for both mates and exit"
        )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Run seqproc from the command line.

    Examples
    --------
    Keep barcode and UMI fields on read 1, drop the rest, pass read 2 through::

        $ seqproc -g '1{b[16]u[12]x:}2{r:}' -1 R1.fq.gz -2 R2.fq.gz -o o1.fq.gz -w o2.fq.gz -t 4

    Inspect what a geometry compiles to::

        $ seqproc -g '1{b[4]f[ATGC]x[0-10]}2{r:}' --dry-run

    Returns
    -------
    int
        0 for successful execution, 1 for failure
    """
    args = parse_args().parse_args(argv)

    # deferred so that --help stays fast
    from seqproc.config import RunConfig
    from seqproc.geometry.errors import GeometryError
    from seqproc.pipeline.compiler import compile_geometry
    from seqproc.pipeline.executor import PairedReadProcessor
    from seqproc.utils.log import Rlogger

    logger = Rlogger().get_logger()

    overrides = dict(
            geom=args.geom,
            file1=args.file1,
            file2=args.file2,
            out1=args.out1,
            out2=args.out2,
            threads=args.threads,
            chunk_size=args.chunk_size,
            log_level=args.log_level,
            report=args.report,
            log_file=args.log_file,
    )

    try:
        if args.log_level:
            Rlogger().set_level(args.log_level)

        start = time.time()

        if args.dry_run:
            geom = args.geom
            if geom is None and args.config:
                geom = RunConfig.read_yaml(args.config).get('geom')
            if geom is None:
                raise ValueError("a geometry is required (--geom or 'geom' in --config)")
            plan = compile_geometry(geom)
            Console(soft_wrap=True).print(plan.describe(), markup=False, highlight=False)
            return 0

        if args.config:
            conf = RunConfig.from_yaml(args.config, **overrides)
        else:
            conf = RunConfig.from_dict(overrides)
        Rlogger().set_level(conf.log_level)
        if conf.log_file:
            Rlogger().enable_file_logging(conf.log_file)
        logger.debug(f"configuration:\n{conf.dump()}")

        # the geometry is compiled before any file is touched
        plan = compile_geometry(conf.geom)
        processor = PairedReadProcessor(plan, chunk_size=conf.chunk_size)
        report = processor.run(conf.file1, conf.file2, conf.out1, conf.out2, threads=conf.threads)
        if conf.report:
            report.write(conf.report)

        logger.info(f"transformation completed in {time.time() - start:.2f}s")
        return 0

    except (GeometryError, ValueError, FileNotFoundError) as e:
        logger.error(f"Error: {e}")
        return 1
    except Exception as e:
        logger.error(f"seqproc failed: {e}", exc_info=True)
        return 1
    finally:
        Rlogger().disable_file_logging()


if __name__ == "__main__":
    sys.exit(main())
