"""
workforce_batch -- PO recalculation runs and their triggers.

Provides the batch runner that enumerates active projects and reconciles
every owner's active PO amendment, and an asyncio scheduler that fires it
once per login, nightly at local midnight, and on demand.

Architecture:
    workforce_batch/ is a top-level package.  Nothing in workforce_kernel
    imports from workforce_batch.
"""
