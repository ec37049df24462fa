from typing import Literal, Optional

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel

from services.overlay import override_store
from services.overlay.reconciler import apply_override
from services.payloadlens.parser import payload_field_map, summarize_payload

app = FastAPI(title="SentryLoom AdminConsole", version="0.1.0")


class AlertUpdate(BaseModel):
    status: Optional[Literal["new", "in_progress", "resolved", "dismissed"]] = None
    assignee: Optional[str] = None


@app.get("/v1/alerts")
def list_alerts(limit: int = 100):
    alerts = override_store.list_alerts(limit=limit)
    overrides = override_store.get_overrides([a["id"] for a in alerts])
    return {
        "alerts": [apply_override(a, overrides.get(a["id"])) for a in alerts],
    }


@app.get("/v1/alerts/{alert_id}")
def get_alert(alert_id: int):
    alert = override_store.get_alert(alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")

    view = apply_override(alert, override_store.get_override(alert_id))
    view["payload_summary"] = summarize_payload(alert.get("payload_raw"))
    view["payload_fields"] = payload_field_map(alert.get("payload_raw"))
    return {"alert": view}


@app.patch("/v1/alerts/{alert_id}")
def update_alert(
    alert_id: int,
    update: AlertUpdate,
    x_analyst: Optional[str] = Header(default=None),
):
    changes = update.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(status_code=400, detail="No updates provided")

    alert = override_store.get_alert(alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")

    override = override_store.upsert_override(
        alert_id,
        status=changes.get("status"),
        assignee=changes.get("assignee"),
        updated_by=x_analyst,
    )
    return {"alert": apply_override(alert, override)}


@app.get("/v1/ingest/runs/{run_id}")
def get_run(run_id: int):
    run = override_store.get_run(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Ingest run not found")
    return {"run": run}
