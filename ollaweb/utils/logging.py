# Copyright 2025 Ollaweb Contributors
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

"""Log setup for the coordinator process and its engine subprocesses."""
import logging
import sys
from pathlib import Path

LOG_FILE = 'ollaweb.log'
LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(threadName)s] - %(name)s - %(message)s'

# Third-party loggers that would drown out install and generation progress.
# Each streamed chat opens a pooled connection and each request gets an access line.
QUIET_LOGGERS = ('urllib3', 'werkzeug')


def setup_logging(log_dir: Path, debug: bool = False) -> Path:
    """Send coordinator logs to ``log_dir/ollaweb.log`` and stdout.

    Thread names are part of every record since installs, engine output
    forwarding and generation producers each log from their own thread.
    Debug mode also lets through pull progress, relayed ``ollama serve``
    output and the HTTP access log. Returns the log file path.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE

    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout)
        ]
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.INFO if debug else logging.WARNING)

    logging.getLogger(__name__).info(f"Coordinator logging at {logging.getLevelName(level)} to {log_file}")
    return log_file
