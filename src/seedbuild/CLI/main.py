"""
Command Line Interface for seedbuild.
"""
import logging

import click
from dotenv import find_dotenv, load_dotenv

from ..BUILDERS.image_builder import ImageBuilder
from ..MANAGERS.container_manager import LxcContainerManager
from ..MODELS.build_config import DEFAULT_ALIAS, DEFAULT_IMAGE, BuildConfig
from ..UTILS.log import init_logging

logger = logging.getLogger("seedbuild")


@click.command()
@click.option('--image', default=DEFAULT_IMAGE, show_default=True,
              envvar='SEEDBUILD_IMAGE', help='Base CentOS image')
@click.option('--alias', default=DEFAULT_ALIAS, show_default=True,
              envvar='SEEDBUILD_ALIAS', help='Alias for new image')
@click.option('--keep', is_flag=True, envvar='SEEDBUILD_KEEP',
              help='Keep the build directory and container')
@click.option('--compression-level', type=click.IntRange(0, 9), default=6, show_default=True,
              envvar='SEEDBUILD_COMPRESSION_LEVEL', help='gzip level for the rewritten image')
@click.option('--log-file', type=click.Path(dir_okay=False), default=None,
              help='Also write a full debug log to this file')
@click.option('--verbose', '-v', is_flag=True, help='Show debug output')
@click.pass_context
def cli(ctx, image, alias, keep, compression_level, log_file, verbose):
    """
    Build a cloud-init capable LXD image.

    Launches a container from the base image, installs cloud-init in it,
    publishes it, and injects the cloud-init seed templates into the image
    before importing it under the alias.
    """
    init_logging(verbose=verbose, log_file=log_file)
    config = BuildConfig(
        image=image,
        alias=alias,
        keep=keep,
        compression_level=compression_level,
    )
    ctx.ensure_object(dict)
    manager = ctx.obj.get('manager') or LxcContainerManager()
    try:
        ImageBuilder(config, manager).build()
    except Exception as e:
        logger.error(f"Build failed: {e}")
        # Console shows this with --verbose; --log-file always keeps it.
        logger.debug("Build failure traceback", exc_info=True)
        ctx.exit(1)


def main():
    """
    Main entry point for the CLI.
    """
    load_dotenv(find_dotenv(usecwd=True))
    cli(obj={})


if __name__ == '__main__':
    main()
