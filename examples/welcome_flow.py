"""
Welcome Flow Example - In-Process Queue

This example routes a "user.created" event to two functions through an
asyncio queue that honours job delays.

## Pattern Shown: Memoized Steps, Sleeps and Retries

- "send welcome" loads the user, sleeps for two seconds, then sends mail.
  The load step runs once even though the function body is replayed.
- "sync crm" fails twice before succeeding; each failure produces a retry
  job with a short jitter.
- Jobs cross the queue as JSON text, as they would with a real broker.

## Run with:
```bash
PYTHONPATH=src python examples/welcome_flow.py
```
"""

import asyncio
import logging

from pyjobrouter import (
    ExecutionRecord,
    Hooks,
    JobRouter,
    JobScheduler,
    JobWorker,
    RetryPolicy,
    get_delay_seconds,
)

logging.basicConfig(level=logging.INFO, format="%(name)s %(levelname)s %(message)s")

crm_attempts = 0


def load_user(user_id: str) -> dict:
    print(f"Loading user {user_id}")
    return {"id": user_id, "email": f"{user_id}@example.com"}


async def send_welcome(args):
    user = await args.step.run("load user", lambda: load_user(args.data["userId"]))
    await args.step.sleep("wait before mail", (2, "seconds"))
    await args.step.run("send mail", lambda: print(f"Welcome mail sent to {user['email']}"))


async def sync_crm(args):
    def push():
        global crm_attempts
        crm_attempts += 1
        if crm_attempts < 3:
            raise ConnectionError(f"CRM unavailable (attempt {crm_attempts})")
        return "crm-42"

    return await args.step.run("push contact", push)


def report_error(hook_args):
    print(f"[{hook_args.function_name}] error: {hook_args.error}")


async def main():
    """Run the welcome flow until no jobs are left."""
    queue: asyncio.Queue[str] = asyncio.Queue()
    in_flight = 0
    loop = asyncio.get_running_loop()

    async def send(jobs: list[ExecutionRecord]):
        nonlocal in_flight
        for job in jobs:
            in_flight += 1
            loop.call_later(get_delay_seconds(job), queue.put_nowait, job.to_json())
        return len(jobs)

    router = JobRouter(
        retry_policy=RetryPolicy(max_retries=3, jitter_min_seconds=0, jitter_max_seconds=1),
        hooks=Hooks(on_error=report_error),
    )
    router.on(
        "user.created",
        [
            router.create_handler("send welcome", send_welcome),
            router.create_handler("sync crm", sync_crm),
        ],
    )

    scheduler = JobScheduler(send)
    worker = JobWorker(router, scheduler)

    await scheduler.send_event("user.created", {"userId": "ada"})

    while in_flight:
        message = await queue.get()
        outcome = await worker.handle_job(ExecutionRecord.from_json(message))
        in_flight -= 1
        print(f"Round finished: {outcome.status} ({len(outcome.next_jobs)} follow-up jobs)")

    print("Welcome flow complete!")


if __name__ == "__main__":
    asyncio.run(main())
