# CLI argument parsing for layerpull

import argparse


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        prog="layerpull",
        description="Pulls an image from an OCI registry and writes its first layer to disk.",
    )
    p.add_argument(
        "--oci-image", "-o",
        dest="image_ref",
        required=True,
        help="The image to pull, e.g. oci://<domain>/<org>/<repo>[:<tag>]",
    )
    p.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output",
    )
    p.add_argument(
        "--config", "-c",
        dest="config_file",
        help="Config file (default: ~/.layerpull.yaml)",
    )
    p.add_argument(
        "--output-dir",
        dest="output_dir",
        default=None,
        help="Write layer.tar.gz here instead of a new temporary directory",
    )
    p.add_argument(
        "--platform",
        default=None,
        help="os/arch[/variant] to use when the reference is a multi-platform index",
    )
    p.add_argument(
        "--verify-digest",
        action="store_true",
        default=None,
        help="Check the downloaded layer against its manifest digest",
    )
    p.add_argument(
        "--log-file", "-l",
        dest="log_file",
        help="Path to save a complete log of output",
    )
    return p.parse_args(argv)
