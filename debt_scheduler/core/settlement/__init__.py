from .models import DebtCollection, DebtSummary, Err, Ok, SettlementResult
from .client import HttpSettlementClient, SettlementClient
from .classification import (
    FailureKind,
    OperationResult,
    RetryableFailure,
    Success,
    TerminalFailure,
    UnexpectedFailure,
    classify_initialize_failure,
    classify_pay_debt,
    classify_pay_debt_failure,
)
