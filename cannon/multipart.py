"""
Builds multipart/form-data bodies.

Every part needs its own ``Content-Disposition: form-data; name="..."`` header
and its data, which is either a string or the contents of a file. The whole body
is rendered up front, so it should only be used for modest payloads.
"""

from dataclasses import dataclass
import logging
import os
from pathlib import Path
from typing import Mapping, Optional, Tuple, Union

from urllib3.fields import RequestField
from urllib3.filepost import encode_multipart_formdata

from .errors import MultipartError


logger = logging.getLogger(__name__)

FilePart = Tuple[Union[str, os.PathLike], str]
"""
A file to upload, paired with its media type. E.g., ``(Path('me.png'), 'image/png')``.
"""


@dataclass(frozen=True)
class MultipartBody:
    content_type: str
    """
    The Content-Type of the body, boundary included.
    """

    payload: bytes


def build_multipart(files: Mapping[str, FilePart],
                    params: Optional[Mapping[str, str]] = None,
                    boundary: Optional[str] = None) -> MultipartBody:
    """
    Render files and string fields into one multipart/form-data body.

    @param files
      Field name to (file path, media type).
    @param params
      Field name to string value.
    @param boundary
      The part boundary. A random one is chosen when omitted.
    @throws MultipartError
      If a file cannot be read.
    """
    fields = []

    for name, (path, media_type) in files.items():
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.warning('Could not read {} for part "{}": {}'.format(path, name, e))
            raise MultipartError(name) from e
        field = RequestField(name=name, data=data, filename=path.name)
        field.make_multipart(content_type=media_type)
        fields.append(field)

    for name, value in (params or {}).items():
        field = RequestField(name=name, data=value)
        field.make_multipart()
        fields.append(field)

    payload, content_type = encode_multipart_formdata(fields, boundary=boundary)
    logger.info('Built a multipart body of {} parts, {} bytes'.format(len(fields), len(payload)))
    return MultipartBody(content_type=content_type, payload=payload)
