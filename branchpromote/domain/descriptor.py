"""
Deployment descriptor rewriting for branchpromote.

A descriptor is a text manifest per environment carrying the image the
runtime should run. Rewriting happens fully in memory; persistence is
the caller's job, so a failed rewrite never leaves a half-written file.
"""

import re
from typing import Optional

from ..exceptions import DescriptorMalformed

# An "image" key at the start of a line, optionally as a list item. Group 1
# keeps the indentation and list marker; the value runs to the line terminator.
IMAGE_LINE = re.compile(r'^([ \t]*(?:-[ \t]+)?)image:[ \t][^\r\n]*', re.MULTILINE)
IMAGE_VALUE = re.compile(r'^[ \t]*(?:-[ \t]+)?image:[ \t]*([^\r\n]*)', re.MULTILINE)


def rewrite(content: str, image_reference: str) -> str:
    """
    Point every image line at a new image reference.

    Indentation, list markers and line endings around the image key are
    kept. Applying the same reference twice yields identical output.

    Args:
        content: Current descriptor text
        image_reference: New image, e.g. "registry/app:dev-7"

    Returns:
        Rewritten descriptor text

    Raises:
        DescriptorMalformed: If no image line is present
    """
    replacement = f"image: {image_reference}"
    updated, count = IMAGE_LINE.subn(lambda m: m.group(1) + replacement, content)
    if count == 0:
        raise DescriptorMalformed("Descriptor contains no 'image:' line to rewrite")
    return updated


def current_image(content: str) -> Optional[str]:
    """Return the first image reference in a descriptor, if any."""
    match = IMAGE_VALUE.search(content)
    if not match:
        return None
    return match.group(1).strip() or None
