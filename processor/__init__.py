"""
Resumable, time-bounded log processing loop.

Modules:
    records: Record and Page value objects
    accumulator: Batch accumulator decoupling page size from batch size
    budget: Wall-clock budget for a run
    status: Error accumulator, checkpoint state and run results
    runner: The LogsProcessor loop
    scheduler: APScheduler integration for periodic runs

Example:
    store = MemoryCheckpointStore()
    processor = LogsProcessor(store, {
        "domain": "tenant.example.com",
        "client_id": "...",
        "client_secret": "...",
        "max_run_time_seconds": 20,
    })

    async def consumer(records):
        await ship(records)

    result = await processor.run(consumer)
    print(result.status.logs_processed, result.checkpoint)

Error Handling:
    Errors hit during a run never escape run(); they are returned in
    result.status. The first error is recorded and the run goes on where it
    can; the second stops it. A consumer signals a failed batch by raising
    core.exceptions.ConsumerError.
"""

__all__ = [
    "records",
    "accumulator",
    "budget",
    "status",
    "runner",
    "scheduler",
]
