# layerpull main CLI

import sys

from layerpull.config import ConfigError, load_config
from layerpull.modules.cli import parse_args
from layerpull.modules.errors import LayerPullError
from layerpull.modules.keepers import pull_layer
from layerpull.modules.logger import setup_logging


def main(argv=None):
    args = parse_args(argv)
    logger = setup_logging(args.verbose, args.log_file)

    try:
        config = load_config(args.config_file)
        overrides = {"platform": args.platform, "verify_digest": args.verify_digest}
        config.update({k: v for k, v in overrides.items() if v is not None})

        result = pull_layer(args.image_ref, config, logger=logger, output_dir=args.output_dir)
    except (LayerPullError, ConfigError) as e:
        logger.debug("Pull failed", exc_info=True)
        print(f"[!] Error: {e}", file=sys.stderr)
        return 1

    print(f"[+] Layer written to {result.path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
