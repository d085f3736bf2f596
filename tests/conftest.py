"""
Pytest configuration: engine logs are shown at INFO while tests run.
"""
import logging
import sys

from bittensor.utils.btlogging import logging as bt_logging

# Override with pytest --log-cli-level
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout
)

bt_logging.enable_info()
