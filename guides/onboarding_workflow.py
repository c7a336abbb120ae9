"""Employee onboarding as a durable workflow.

Run it, crash it, resume it:

    export DURASTEP_DATABASE_URL=sqlite://onboarding.db
    durastep run guides/onboarding_workflow.py:onboard_employee -e onboarding-wf-001 --interrupt-after 2
    durastep run guides/onboarding_workflow.py:onboard_employee -e onboarding-wf-001
    durastep executions show onboarding-wf-001

The second run skips the steps the first one completed.
"""

import asyncio

from durastep import DurableContext, WorkflowRunner
from durastep.persistence import InMemoryStepRecordStore


async def onboard_employee(ctx: DurableContext, name: str = "Alice Smith") -> dict:
    employee = await ctx.step(
        "Create Employee Record", lambda: {"empId": "E101", "name": name}
    )

    ctx.log("Starting parallel provisioning...")
    laptop, access = await ctx.parallel(
        [
            ctx.call("Provision Laptop", lambda: "MacBook Pro M3 Pro"),
            ctx.call("Configure Access", lambda: ["Slack", "GitHub", "Jira"]),
        ]
    )

    email = await ctx.step("Send Welcome Email", lambda: "sent")
    return {"employee": employee, "laptop": laptop, "access": access, "email": email}


async def main() -> None:
    runner = WorkflowRunner(store=InMemoryStepRecordStore())
    outcome = await runner.run(onboard_employee, "onboarding-wf-001")
    print(outcome.status.value, outcome.result)


if __name__ == "__main__":
    asyncio.run(main())
