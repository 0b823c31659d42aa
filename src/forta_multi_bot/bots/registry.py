from __future__ import annotations

from .account_balance import ACCOUNT_BALANCE
from .address_watch import ADDRESS_WATCH
from .base import BotModule
from .contract_variable_monitor import CONTRACT_VARIABLE_MONITOR
from .gnosis_safe_multisig import GNOSIS_SAFE_MULTISIG
from .governance import GOVERNANCE
from .monitor_events import ADMIN_EVENTS, MONITOR_EVENTS
from .monitor_function_calls import MONITOR_FUNCTION_CALLS
from .new_contract_interaction import NEW_CONTRACT_INTERACTION
from .tornado_cash_monitor import TORNADO_CASH_MONITOR
from .transaction_failure_count import TRANSACTION_FAILURE_COUNT

BOT_REGISTRY: dict[str, BotModule] = {
    module.bot_type: module
    for module in (
        ACCOUNT_BALANCE,
        ADDRESS_WATCH,
        ADMIN_EVENTS,
        CONTRACT_VARIABLE_MONITOR,
        GNOSIS_SAFE_MULTISIG,
        GOVERNANCE,
        MONITOR_EVENTS,
        MONITOR_FUNCTION_CALLS,
        NEW_CONTRACT_INTERACTION,
        TORNADO_CASH_MONITOR,
        TRANSACTION_FAILURE_COUNT,
    )
}
