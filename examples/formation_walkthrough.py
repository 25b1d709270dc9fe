"""
Formation Walkthrough

Forms a Wyoming LLC end to end, then runs a compliance pass over the
calendar the workflow produced.

## How It Works

1. A workflow is created from the WY template (9 steps)
2. Actionable steps are executed wave by wave until none remain
3. compliance_setup generates the entity's compliance calendar
4. One monitor pass classifies events and prepares the actionable ones

Collaborators are in-process stand-ins that print what a real
registration office, tax authority or document service would receive.

## Run with
```bash
PYTHONPATH=src python3 examples/formation_walkthrough.py
```
"""

import asyncio
import logging
from datetime import date, timedelta
from pathlib import Path

from pyformation import FormationService
from pyformation.collaborators import (
    Artifact,
    Collaborators,
    FilingReceipt,
    LicenseRequirement,
    NameAvailability,
)
from pyformation.config import Settings

logging.basicConfig(level=logging.CRITICAL)


class PrintingDocuments:
    async def render(self, kind, record, jurisdiction, *, idempotency_key):
        print(f"  [documents] {kind} for {jurisdiction}")
        return Artifact(f"doc-{idempotency_key[:12]}", kind, f"memory://{kind}", dict(record))


class PrintingRegistration:
    async def check_name_availability(self, name, jurisdiction):
        print(f"  [registration] searching {name!r} in {jurisdiction}")
        return NameAvailability(available=True)

    async def reserve_name(self, name, jurisdiction, *, idempotency_key):
        return {"reservation_number": f"R-{idempotency_key[:8]}", "expires_in_days": 120}

    async def file_articles(self, articles, jurisdiction, *, approved_by, idempotency_key):
        print(f"  [registration] filing {articles.document_id} (approved by {approved_by})")
        today = date.today()
        return FilingReceipt(f"{jurisdiction}-{idempotency_key[:8]}", today, today + timedelta(days=3), 100.0)

    async def identify_licenses(self, business_purpose, jurisdiction):
        return [LicenseRequirement("General Business License", "local", "City Clerk", True, 50.0)]


class PrintingTax:
    async def apply_for_ein(self, entity_name, application, *, approved_by, idempotency_key):
        print(f"  [tax] EIN application for {entity_name!r}")
        return "98-7654321"


class PrintingAgents:
    async def secure_agent(self, entity_name, jurisdiction, *, idempotency_key):
        return {"agent_name": "Registered Agents of Wyoming", "annual_fee": 149}


async def main():
    Path("data").mkdir(exist_ok=True)
    settings = Settings(store_url="sqlite:///data/formation_walkthrough.db")
    collaborators = Collaborators(
        PrintingDocuments(), PrintingRegistration(), PrintingTax(), PrintingAgents()
    )
    service = await FormationService.from_settings(collaborators, settings)
    await service.store.reset()

    created = await service.create_workflow(
        {"businessName": "Summit Trail Outfitters LLC", "state": "WY", "members": ["Dana Reyes"]}
    )
    instance_id = created.data.id
    print(f"Workflow {instance_id} created")

    while True:
        actionable = (await service.next_actionable_steps(instance_id)).data
        if not actionable:
            break
        for step_id in actionable:
            response = await service.execute_step(
                instance_id, step_id, {"approved_by": "dana@summittrail.example"}
            )
            progress = (await service.progress(instance_id)).data
            state = "ok" if response.success else response.error.kind
            print(f"{step_id.value:<22} {state:<10} {progress:5.1f}%")

    workflow = (await service.get_workflow(instance_id)).data
    print(f"Workflow status: {workflow.status.value}, calendar: {workflow.calendar_id}")

    report = (await service.monitor(workflow.calendar_id)).data
    print(f"Compliance status: {report.status.value}")
    print(f"Upcoming: {len(report.upcoming)}  Overdue: {len(report.overdue)}")
    for result in report.automation_results:
        print(f"  prepared {result.event_id}: {result.action} (+${result.revenue})")
    print(f"Revenue opportunity: ${report.revenue_opportunity}")

    await service.close()


if __name__ == "__main__":
    asyncio.run(main())
