import logging
import os
import cv2
import numpy as np
from typing import Dict, Iterable, List, Optional, Tuple

IMAGE_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.tif', '.tiff', '.bmp')

REFERENCE_STEM = 'reference'
REGISTERED_STEM = 'registered'

logger = logging.getLogger(__name__)


class ImageSetDataset:
    """
    Image-set directories for stitching benchmarks

    Every sub-directory of ``data_dir`` is one image set holding two images,
    by convention named ``reference.*`` and ``registered.*``. When those names
    are absent and the directory holds exactly two images, they are taken in
    sorted order (reference first).
    """

    def __init__(self,
                 data_dir: str,
                 set_names: Optional[Iterable[str]] = None,
                 read_flags: int = cv2.IMREAD_COLOR):
        """
        Initialize the dataset

        Args:
            data_dir: Directory containing one sub-directory per image set
            set_names: Only include these sets (None: all)
            read_flags: cv2.imread flags
        """
        self.data_dir = data_dir
        self.read_flags = read_flags

        if not os.path.isdir(data_dir):
            raise FileNotFoundError(f"Image directory does not exist: {data_dir}")

        self.set_names = self._discover_sets(set_names)

    def _discover_sets(self, set_names: Optional[Iterable[str]]) -> List[str]:
        names = sorted(entry for entry in os.listdir(self.data_dir)
                       if os.path.isdir(os.path.join(self.data_dir, entry)))

        if set_names is not None:
            wanted = set(set_names)
            for missing in sorted(wanted.difference(names)):
                logger.warning("Image set not found: %s", missing)
            names = [name for name in names if name in wanted]

        return names

    def find_image_pair(self, set_dir: str) -> Tuple[str, str]:
        """Paths of the reference and registered images of one set"""
        image_files = sorted(f for f in os.listdir(set_dir)
                             if f.lower().endswith(IMAGE_EXTENSIONS))

        by_stem = {os.path.splitext(f)[0].lower(): f for f in image_files}
        if REFERENCE_STEM in by_stem and REGISTERED_STEM in by_stem:
            pair = (by_stem[REFERENCE_STEM], by_stem[REGISTERED_STEM])
        elif len(image_files) == 2:
            pair = (image_files[0], image_files[1])
        else:
            raise FileNotFoundError(
                f"Expected reference/registered images in {set_dir}, found {len(image_files)} image(s)"
            )

        return os.path.join(set_dir, pair[0]), os.path.join(set_dir, pair[1])

    def __len__(self):
        return len(self.set_names)

    def __getitem__(self, idx) -> Dict:
        return self.load(self.set_names[idx])

    def load(self, set_name: str) -> Dict:
        """
        Load one image set

        Raises:
            FileNotFoundError: The set directory or its images are missing
            ValueError: An image could not be decoded
        """
        set_dir = os.path.join(self.data_dir, set_name)
        reference_path, registered_path = self.find_image_pair(set_dir)

        reference = cv2.imread(reference_path, self.read_flags)
        registered = cv2.imread(registered_path, self.read_flags)

        if reference is None or registered is None:
            raise ValueError(f"Could not load images: {reference_path}, {registered_path}")

        return {
            'name': set_name,
            'reference': reference,
            'registered': registered,
            'reference_path': reference_path,
            'registered_path': registered_path,
        }


def write_image_set(data_dir: str, set_name: str, reference: np.ndarray,
                    registered: np.ndarray, extension: str = '.png') -> str:
    """Write an image pair using the reference/registered naming convention"""
    set_dir = os.path.join(data_dir, set_name)
    os.makedirs(set_dir, exist_ok=True)
    cv2.imwrite(os.path.join(set_dir, REFERENCE_STEM + extension), reference)
    cv2.imwrite(os.path.join(set_dir, REGISTERED_STEM + extension), registered)
    return set_dir
