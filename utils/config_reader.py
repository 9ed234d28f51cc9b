import sys
from logging import Logger
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml

from rest_ingestor.config import prepare

"""
Config
Loads the ingestor YAML document (``envs`` + ``ingestors``) and resolves one
ingestor definition against one environment.
"""


class ConfigReader:
    def __init__(self, log: Logger, configs_path: Path) -> None:
        """
        :param log: Logger instance for logging messages.
        :param configs_path: Path to the YAML document.
        """
        self.configs_path = Path(configs_path)
        self.configs_data: Dict[str, Any] = {}
        self.log = log

    def load_configurations(self) -> "ConfigReader":
        """Loads the YAML document into ``configs_data``.

        :return: Self for fluent interface.
        :raises SystemExit: If the file cannot be loaded or does not exist.
        """
        try:
            self._check_path_exists()
            try:
                with open(self.configs_path, "rb") as configs_file:
                    self.configs_data = yaml.safe_load(configs_file) or {}
                return self
            except yaml.YAMLError as e:
                self.log.error(
                    "Issue loading file '%s': %s" % (self.configs_path, e)
                )
                sys.exit(1)
        except FileNotFoundError as e:
            self.log.error("Issue loading file: %s" % (e))
            sys.exit(1)

    def ingestor(
        self, ingestor_name: str, env_name: str
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Return (env_cfg, definition) with defaults merged and env vars expanded."""
        return prepare(self.configs_data, ingestor_name, env_name)

    def _check_path_exists(self) -> None:
        if not self.configs_path.exists():
            raise FileNotFoundError(
                "The file '%s' does not exist." % (self.configs_path)
            )
