import logging
import sys

# 1. Set up a handler and formatter for console output.
# Only the package logger gets the handler so host applications keep
# control of the root logger.
console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(logging.DEBUG)
formatter = logging.Formatter(
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
console_handler.setFormatter(formatter)

# 2. Package logger at INFO; modules use logging.getLogger(__name__)
package_logger = logging.getLogger(__name__)
package_logger.setLevel(logging.INFO)
package_logger.addHandler(console_handler)

# 3. Suppress chatty library loggers
logging.getLogger("joblib").setLevel(logging.WARNING)

from irtfit.fit import (  # noqa: E402
    FitResult,
    M2Config,
    PooledFitResult,
    ResidualMatrix,
    compute_m2,
    impute_missing,
)

__all__ = [
    "FitResult",
    "M2Config",
    "PooledFitResult",
    "ResidualMatrix",
    "compute_m2",
    "impute_missing",
]
