"""Image reference parsing helpers."""

from typing import Any, Iterable, List, Mapping, Union

from pydantic import ValidationError

from .exceptions import ConfigurationError
from .models import ImageRef


def parse_image_ref(value: Union[str, Mapping[str, Any], ImageRef]) -> ImageRef:
    """
    Parse a `repository:tag` string (or a mapping with `repository` and
    `tag` keys) into an ImageRef.

    The tag is split off at the last colon that follows the last slash, so
    repositories containing path segments are accepted. Digest references
    and references without a tag are rejected.

    Raises:
        ConfigurationError: If the reference is malformed.
    """
    if isinstance(value, ImageRef):
        return value

    if isinstance(value, Mapping):
        fields = {"repository": value.get("repository", ""), "tag": value.get("tag", "")}
        label = repr(dict(value))
    else:
        text = str(value)
        label = repr(text)
        if any(ch.isspace() for ch in text):
            raise ConfigurationError(f"Invalid image reference {label}: contains whitespace")
        if "@" in text:
            raise ConfigurationError(
                f"Invalid image reference {label}: digest references are not supported"
            )
        slash = text.rfind("/")
        colon = text.rfind(":")
        if colon <= slash:
            raise ConfigurationError(f"Invalid image reference {label}: expected repository:tag")
        fields = {"repository": text[:colon], "tag": text[colon + 1 :]}

    try:
        return ImageRef(**fields)
    except ValidationError as exc:
        reasons = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])} {err['msg']}" for err in exc.errors()
        )
        raise ConfigurationError(f"Invalid image reference {label}: {reasons}") from exc


def parse_image_refs(values: Iterable[Union[str, Mapping[str, Any], ImageRef]]) -> List[ImageRef]:
    """Parse every reference, failing on the first malformed one."""
    return [parse_image_ref(value) for value in values]
