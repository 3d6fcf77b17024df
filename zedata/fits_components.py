"""
List the image components of a FITS file and optionally re-export it as an observation.

Example:
    python -m zedata.fits_components map.fits --export map-f32.fits --dtype float32
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from astropy.io import fits

from .component import ComponentType
from .image import FITS_DTYPES
from .observation import IMAGE_HDU_TYPES, Observation2D
from .settings_store import default_fits_dtype, load_persistent_settings

logger = logging.getLogger(__name__)


def describe_hdus(hdul: fits.HDUList) -> List[dict]:
    """One record per HDU: position, EXTNAME, shape and guessed component."""
    records: List[dict] = []
    seen_image = False
    for position, hdu in enumerate(hdul):
        extname = hdu.header.get("EXTNAME")
        is_image = isinstance(hdu, IMAGE_HDU_TYPES) and hdu.data is not None
        if not is_image:
            component = None
        elif not seen_image:
            component = ComponentType.SIGNAL
            seen_image = True
        else:
            component = ComponentType.guess_type(extname)
        records.append(
            {
                "index": position,
                "extname": str(extname) if extname else None,
                "kind": type(hdu).__name__,
                "shape": list(hdu.data.shape) if is_image else None,
                "component": component.name if component is not None else None,
            }
        )
        logger.debug("HDU %d %s -> %s", position, extname, records[-1]["component"])
    return records


def export_observation(
    source: Path, target: Path, data_type: str, *, zero_weight_valid: bool = False
) -> Observation2D:
    observation = Observation2D(zero_weight_valid=zero_weight_valid)
    with fits.open(source) as hdul:
        complete = observation.read_hdus(hdul)
    if not complete:
        logger.warning("%s lacks some of signal/weight/exposure; missing parts use defaults", source)
    observation.get_hdus(data_type).writeto(target, overwrite=True)
    logger.info("exported %s (%s) to %s as %s", source, observation.get_size_string(), target, data_type)
    return observation


def _print_table(path: Path, records: Sequence[dict]) -> None:
    print(f"{path}: {len(records)} HDU(s)")
    for rec in records:
        shape = "x".join(str(n) for n in reversed(rec["shape"])) if rec["shape"] else "-"
        print(f"  [{rec['index']}] {rec['extname'] or '(no EXTNAME)':<20} {rec['kind']:<12} {shape:<12} {rec['component'] or '-'}")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("path", type=Path, help="FITS file to inspect")
    parser.add_argument("--export", type=Path, help="write signal/exposure/noise/S/N HDUs to this file")
    parser.add_argument("--dtype", choices=sorted(FITS_DTYPES), help="storage class for --export")
    parser.add_argument("--json", action="store_true", help="print the HDU listing as JSON")
    parser.add_argument(
        "--log-level",
        default=None,
        help="logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL). Default: saved setting",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    settings = load_persistent_settings()
    level_name = (args.log_level or settings.log_level).upper()
    log_level = getattr(logging, level_name, None)
    if not isinstance(log_level, int):
        parser.error(f"invalid log level {args.log_level!r}")
    logging.basicConfig(level=log_level, format="%(levelname)s: %(message)s")
    try:
        with fits.open(args.path) as hdul:
            records = describe_hdus(hdul)
        if args.json:
            print(json.dumps(records, indent=2))
        else:
            _print_table(args.path, records)
        if args.export:
            data_type = args.dtype or default_fits_dtype(settings)
            export_observation(args.path, args.export, data_type, zero_weight_valid=settings.zero_weight_valid)
        return 0
    except Exception as exc:
        logger.exception("fits_components failed: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
