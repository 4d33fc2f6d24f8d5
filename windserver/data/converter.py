"""
GRIB2 to JSON conversion via the grib2json command-line tool.

grib2json (https://github.com/cambecc/grib2json) is a Java program; we run
it as a subprocess and treat a non-zero exit, a missing binary or a timeout
as a conversion failure.
"""

import logging
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

from windserver.errors import ConversionError
from windserver.grid import Stamp

logger = logging.getLogger(__name__)


class SnapshotConverter(ABC):
    """Turns a raw snapshot file into its servable JSON form."""

    @abstractmethod
    def convert(self, stamp: Stamp, source: Path, destination: Path) -> None:
        """
        Convert ``source`` into ``destination``.

        Raises:
            ConversionError: the conversion did not produce a usable file
        """
        pass


class Grib2JsonConverter(SnapshotConverter):
    """Runs ``grib2json --data --names --compact``."""

    def __init__(self, binary: str = "converter/bin/grib2json", timeout: float = 300.0):
        self.binary = binary
        self.timeout = timeout

    def command(self, source: Path, destination: Path) -> List[str]:
        return [
            self.binary,
            "--data",
            "--output", str(destination),
            "--names",
            "--compact",
            str(source),
        ]

    def convert(self, stamp: Stamp, source: Path, destination: Path) -> None:
        cmd = self.command(source, destination)
        logger.debug(f"Running {' '.join(cmd)}")
        try:
            subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=self.timeout)
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()[-500:]
            raise ConversionError(stamp, f"grib2json exited with {e.returncode}: {stderr}") from e
        except subprocess.TimeoutExpired as e:
            raise ConversionError(stamp, f"grib2json timed out after {self.timeout}s") from e
        except FileNotFoundError as e:
            raise ConversionError(stamp, f"grib2json not found at {self.binary}") from e

        logger.info(f"Converted {source.name} -> {destination.name}")
