from qcfl.core.logging.structured import (
    StructuredFormatter,
    feature_var,
    setup_logging,
    user_id_var,
)

__all__ = ["StructuredFormatter", "feature_var", "setup_logging", "user_id_var"]
