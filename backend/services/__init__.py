from services.locks import KeyedLock

# One lock registry per process, shared by every request's LedgerService.
ledger_locks = KeyedLock()
