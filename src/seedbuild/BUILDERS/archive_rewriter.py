# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Rewriting of exported image tarballs to carry the cloud-init seed templates.

An exported LXD image is a single compressed tarball holding metadata.yaml,
the templates/ directory and the rootfs/ tree. The rewrite is one forward
pass over the decompressed tarball: every entry except metadata.yaml is
copied as-is and in order, then the regenerated metadata.yaml and the
template files are appended. Nothing is extracted to disk, so root-owned
special files in the rootfs do not need root to handle.
"""

import contextlib
import gzip
import io
import logging
import os
import shutil
import tarfile
import time
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..errors import PreconditionError, UnsupportedCompressionError
from ..MANAGERS.container_manager import ContainerManager
from ..PARSERS.metadata_parser import MetadataParser, inject_templates
from ..REGISTRY.template_registry import TemplateRegistry

logger = logging.getLogger(__name__)

METADATA_ENTRY = "metadata.yaml"
OUTPUT_TARBALL = "output.tar.gz"
DEFAULT_COMPRESSION_LEVEL = 6

# Extension -> opener for the compressed stream. Only gzip is supported.
DECOMPRESSORS: Dict[str, Callable[[str], io.IOBase]] = {
    ".gz": lambda path: gzip.open(path, "rb"),
}


def find_exported_tarball(export_dir: str) -> str:
    """
    Returns the name of the single file an image export produced.

    Split exports (separate rootfs and metadata tarballs) are not supported.

    :raises PreconditionError: If the directory does not hold exactly one file.
    """
    names = sorted(os.listdir(export_dir))
    if len(names) != 1:
        raise PreconditionError(
            f"expected a single tarball, found {len(names)} ({names})"
        )
    return names[0]


def fingerprint_from_name(tarball_name: str) -> str:
    """
    Derives the image fingerprint from an exported tarball name,
    e.g. "8e4c5b1d.tar.gz" -> "8e4c5b1d".
    """
    return tarball_name.split(".", 1)[0]


def decompress(path: str) -> str:
    """
    Decompresses a tarball next to itself and removes the compressed file.

    :param path: Path to the compressed tarball.
    :return: Path to the decompressed tarball.
    :raises UnsupportedCompressionError: If the extension is not a known compression.
    """
    root, ext = os.path.splitext(path)
    opener = DECOMPRESSORS.get(ext)
    if opener is None:
        raise UnsupportedCompressionError(
            f"Unhandled compression type in tarball: {os.path.basename(path)}"
        )

    logger.info(f"Decompressing {os.path.basename(path)}")
    try:
        with opener(path) as src, open(root, "wb") as dst:
            shutil.copyfileobj(src, dst)
    except Exception:
        with contextlib.suppress(FileNotFoundError):
            os.remove(root)
        raise
    os.remove(path)
    return root


def read_entry(tar_path: str, name: str) -> bytes:
    """
    Reads one regular file entry from an uncompressed tarball without
    extracting anything else.

    :raises PreconditionError: If the entry is missing or not a regular file.
    """
    with tarfile.open(tar_path, mode="r|") as tar:
        for member in tar:
            if member.name != name:
                continue
            if not member.isfile():
                raise PreconditionError(f"{name} in {tar_path} is not a regular file")
            return tar.extractfile(member).read()
    raise PreconditionError(f"{name} not found in {tar_path}")


def _add_file(tar: tarfile.TarFile, name: str, content: bytes) -> None:
    info = tarfile.TarInfo(name)
    info.type = tarfile.REGTYPE
    info.mode = 0o644
    info.size = len(content)
    info.mtime = int(time.time())
    tar.addfile(info, io.BytesIO(content))


def _copy_entries(in_path: str, out: tarfile.TarFile, skip: str) -> int:
    copied = 0
    with tarfile.open(in_path, mode="r|") as tar_in:
        for member in tar_in:
            if member.name == skip:
                # Replaced by a regenerated entry after the copy.
                continue
            if member.isfile():
                out.addfile(member, tar_in.extractfile(member))
            else:
                out.addfile(member)
            copied += 1
    return copied


def write_final_tarball(
    out_path: str,
    in_path: str,
    replaced_entry: str,
    entries: Iterable[Tuple[str, bytes]],
    compression_level: int = DEFAULT_COMPRESSION_LEVEL,
) -> int:
    """
    Streams in_path into a new gzip-compressed tarball, dropping
    replaced_entry and appending the given entries after the copied ones.

    The tar writer is closed before the gzip stream and the gzip stream
    before the file; a partially written output is removed on failure.

    :param out_path: Path of the tarball to create.
    :param in_path: Path of the uncompressed source tarball.
    :param replaced_entry: Name of the source entry to leave out.
    :param entries: (name, content) pairs appended in order.
    :param compression_level: gzip compression level, 0-9.
    :return: Number of entries written.
    """
    try:
        with open(out_path, "wb") as fout:
            with gzip.GzipFile(
                filename="", mode="wb", fileobj=fout, compresslevel=compression_level
            ) as gzout:
                with tarfile.open(
                    fileobj=gzout, mode="w|", format=tarfile.PAX_FORMAT
                ) as tar_out:
                    written = _copy_entries(in_path, tar_out, skip=replaced_entry)
                    for name, content in entries:
                        _add_file(tar_out, name, content)
                        written += 1
    except Exception:
        with contextlib.suppress(FileNotFoundError):
            os.remove(out_path)
        raise
    return written


class ArchiveRewriter:
    """
    Exports a published image, injects the seed templates into it and
    imports the result back under the same alias.
    """

    def __init__(
        self,
        manager: ContainerManager,
        registry: Optional[TemplateRegistry] = None,
        compression_level: int = DEFAULT_COMPRESSION_LEVEL,
    ):
        """
        Args:
            manager: Container service used for export, import and image deletion.
            registry: Templates to inject. Defaults to the cloud-init seed set.
            compression_level: gzip level for the rewritten tarball.
        """
        self.manager = manager
        self.registry = registry or TemplateRegistry()
        self.compression_level = compression_level

    def template_entries(self, metadata: bytes) -> List[Tuple[str, bytes]]:
        """
        Entries appended to the rewritten tarball: metadata first, then
        one file per registered template.
        """
        entries = [(METADATA_ENTRY, metadata)]
        for _, seed in self.registry.items():
            entries.append((seed.archive_name, seed.content.encode("utf-8")))
        return entries

    def rewrite_tarball(self, tar_path: str, out_path: str) -> int:
        """
        Builds the rewritten, compressed tarball from an uncompressed export.

        Metadata is parsed and updated before the output file is created, so
        a bad metadata document leaves no output behind.

        :return: Number of entries in the new tarball.
        """
        metadata = MetadataParser.parse(read_entry(tar_path, METADATA_ENTRY))
        self.registry.check_syntax()
        inject_templates(metadata, self.registry)

        logger.info("Updating metadata/templates in tarball")
        written = write_final_tarball(
            out_path,
            tar_path,
            METADATA_ENTRY,
            self.template_entries(MetadataParser.dump(metadata)),
            compression_level=self.compression_level,
        )
        logger.debug(f"Wrote {written} entries to {out_path}")
        return written

    def import_and_cleanup(self, out_path: str, alias: str, fingerprint: str) -> None:
        """
        Imports the rewritten tarball over alias, then deletes the
        intermediate published image by fingerprint.
        """
        self.manager.import_image(out_path, alias)
        self.manager.delete_image(fingerprint)

    def rewrite(self, alias: str, work_dir: str) -> str:
        """
        Runs the whole rewrite for the image published under alias.

        :param alias: Alias of the published image.
        :param work_dir: Empty directory to export into and build the new tarball in.
        :return: Path to the rewritten tarball.
        """
        self.manager.export_image(alias, work_dir)
        tarball_name = find_exported_tarball(work_dir)
        fingerprint = fingerprint_from_name(tarball_name)

        tar_path = decompress(os.path.join(work_dir, tarball_name))
        out_path = os.path.join(work_dir, OUTPUT_TARBALL)
        self.rewrite_tarball(tar_path, out_path)

        self.import_and_cleanup(out_path, alias, fingerprint)
        return out_path
