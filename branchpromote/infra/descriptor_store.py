"""
Descriptor file persistence for branchpromote.

Provides text persistence with:
- Atomic writes (write to temp, then rename)
- Byte-for-byte preservation of line endings
- Paths resolved against the pipeline workspace
"""

import os
import tempfile
from pathlib import Path
import logging

logger = logging.getLogger(__name__)


class DescriptorStore:
    """
    Read and atomically replace deployment descriptors.

    Example:
        store = DescriptorStore("/workspace")
        content = store.read("k8s/dev/deployment.yaml")
        store.write("k8s/dev/deployment.yaml", new_content)
    """

    def __init__(self, root: str = "."):
        """
        Initialize DescriptorStore.

        Args:
            root: Directory relative descriptor paths are resolved against
        """
        self.root = Path(root).expanduser()

    def resolve(self, descriptor_path: str) -> Path:
        path = Path(descriptor_path).expanduser()
        return path if path.is_absolute() else self.root / path

    def read(self, descriptor_path: str) -> str:
        """
        Read a descriptor.

        Raises:
            FileNotFoundError: If the descriptor does not exist
        """
        with open(self.resolve(descriptor_path), 'r', encoding='utf-8', newline='') as f:
            return f.read()

    def write(self, descriptor_path: str, content: str) -> bool:
        """
        Replace a descriptor atomically.

        Returns:
            False if the content was already identical (nothing written)
        """
        path = self.resolve(descriptor_path)
        if path.exists() and self.read(descriptor_path) == content:
            logger.debug(f"{path} already up to date")
            return False

        fd, temp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp"
        )

        try:
            with os.fdopen(fd, 'w', encoding='utf-8', newline='') as f:
                f.write(content)

            # Atomic rename
            os.replace(temp_path, path)

        except Exception:
            # Clean up temp file on error
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

        return True
