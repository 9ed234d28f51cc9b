import argparse
import json
import logging
import os

from logger.basic_logger import setup_logger
from utils.ingestor_wrapper import run_ingestor


def _parse_args(argv=None):
    parser = argparse.ArgumentParser()
    parser.add_argument("-y", "--yaml_path", required=True, help="Path to the ingestor YAML")
    parser.add_argument("--ingestor", required=True, help="Ingestor key under 'ingestors'")
    parser.add_argument("--env", dest="env_name", required=True, help="Env key under 'envs'")
    parser.add_argument("--dry_run", action="store_true")
    parser.add_argument("--start", help="YYYY-MM-DD, exposed as ${START_DATE}")
    parser.add_argument("--end", help="YYYY-MM-DD, exposed as ${END_DATE}")
    parser.add_argument("--log_level", default="INFO")
    parser.add_argument("--extra_env", action="append", default=[], help="KEY=VALUE; repeatable")

    # schedulers often pass extra arguments; ignore them
    args, unknown = parser.parse_known_args(argv)
    if unknown:
        print(f"[runner] Ignoring unknown args: {unknown[:8]}{' ...' if len(unknown)>8 else ''}")
    return args


def main(argv=None) -> None:
    args = _parse_args(argv)

    setup_logger(args.log_level)
    log = logging.getLogger("job_runner")

    # exported before the YAML is read so ${VAR} placeholders can see them
    for kv in args.extra_env:
        if "=" in kv:
            k, v = kv.split("=", 1)
            os.environ[k] = v
            log.info("Set env %s", k)

    log.info(
        "Starting run: ingestor=%s env=%s yaml=%s dry_run=%s",
        args.ingestor, args.env_name, args.yaml_path, args.dry_run
    )

    meta = run_ingestor(
        ingestor=args.ingestor,
        env_name=args.env_name,
        yaml_path=args.yaml_path,
        dry_run=args.dry_run,
        start=args.start,
        end=args.end,
    )
    print(json.dumps({"status": "ok", "meta": meta}))


if __name__ == "__main__":
    main()
