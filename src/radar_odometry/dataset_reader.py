"""Radar image sequence reader.

Expected layout:

    <dataset>/radar/data.csv      #timestamp [ns],filename
    <dataset>/radar/data/*.png    cartesian range images
"""

from pathlib import Path
from typing import Iterator

import cv2
import numpy as np

from .frontend import Frame


class RadarDatasetReader:
    """Reader for a sequence of timestamped cartesian radar images."""

    def __init__(self, dataset_path: str = "data/radar/sequence_01") -> None:
        """Initialize reader with path to dataset.

        Args:
            dataset_path: Path to the directory containing radar/

        Raises:
            FileNotFoundError: If dataset path or required directories don't exist
            ValueError: If data.csv is empty or invalid
        """
        self.dataset_path = Path(dataset_path)

        self.radar_path = self.dataset_path / "radar"
        self.radar_data_path = self.radar_path / "data"

        self._validate_paths()

        self._image_list = self._load_image_list()

        if not self._image_list:
            raise ValueError(f"No images found in {self.radar_path / 'data.csv'}")

        self._current_idx = 0

    def _validate_paths(self) -> None:
        """Validate that all required paths exist."""
        if not self.dataset_path.exists():
            raise FileNotFoundError(f"Dataset path does not exist: {self.dataset_path}")

        if not self.radar_path.exists():
            raise FileNotFoundError(
                f"radar directory not found: {self.radar_path}\n"
                f"Expected structure: {self.dataset_path}/radar/"
            )

        if not self.radar_data_path.exists():
            raise FileNotFoundError(
                f"radar/data directory not found: {self.radar_data_path}"
            )

        csv_path = self.radar_path / "data.csv"
        if not csv_path.exists():
            raise FileNotFoundError(
                f"radar/data.csv not found: {csv_path}\n"
                f"This file is required to list image timestamps and filenames."
            )

    def _load_image_list(self) -> list[tuple[int, str]]:
        """Parse radar/data.csv to get the image list.

        CSV format:
            #timestamp [ns],filename
            1547131046353776000,1547131046353776000.png

        Returns:
            List of (timestamp_ns, filename) tuples in file order
        """
        csv_path = self.radar_path / "data.csv"
        image_list = []

        with open(csv_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue

                try:
                    timestamp_str, filename = line.split(",")
                    timestamp_ns = int(timestamp_str.strip())
                    image_list.append((timestamp_ns, filename.strip()))
                except ValueError as e:
                    raise ValueError(
                        f"Invalid line in {csv_path}: '{line}'\n"
                        f"Expected format: timestamp,filename"
                    ) from e

        return image_list

    def _load_image(self, filename: str) -> np.ndarray:
        """Load one radar image as grayscale.

        Raises:
            FileNotFoundError: If the image file doesn't exist
            ValueError: If image loading fails
        """
        path = self.radar_data_path / filename
        if not path.exists():
            raise FileNotFoundError(f"Radar image not found: {path}")

        image = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
        if image is None:
            raise ValueError(f"Failed to load radar image: {path}")

        return image

    def get_next_image(self) -> tuple[np.ndarray, int] | None:
        """Get the next radar image.

        Returns:
            Tuple of (image, timestamp_ns), or None if no more images.

        Example:
            >>> reader = RadarDatasetReader('data/radar/sequence_01')
            >>> while (item := reader.get_next_image()) is not None:
            ...     image, timestamp = item
        """
        if self._current_idx >= len(self._image_list):
            return None

        timestamp_ns, filename = self._image_list[self._current_idx]
        image = self._load_image(filename)

        self._current_idx += 1
        return image, timestamp_ns

    def frames(self) -> Iterator[Frame]:
        """Iterate the whole sequence as back-end frames."""
        for image, timestamp_ns in self:
            yield Frame(timestamp_ns=timestamp_ns, data=image)

    def reset(self) -> None:
        """Reset iterator to beginning of dataset."""
        self._current_idx = 0

    def __len__(self) -> int:
        """Return total number of images in the dataset."""
        return len(self._image_list)

    def __iter__(self) -> Iterator[tuple[np.ndarray, int]]:
        """Allow iteration over the dataset.

        Yields:
            Tuple of (image, timestamp_ns)
        """
        self.reset()
        return self

    def __next__(self) -> tuple[np.ndarray, int]:
        """Get next image for iterator protocol.

        Raises:
            StopIteration: When no more images available
        """
        item = self.get_next_image()
        if item is None:
            raise StopIteration
        return item
