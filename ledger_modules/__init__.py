"""
ledger_modules -- business modules built on the ledger kernel.

Modules own their own ORM tables and call into the kernel's services.
Nothing in ledger_kernel/ imports from here.
"""
