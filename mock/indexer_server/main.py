from dataclasses import asdict

from fastapi import FastAPI, HTTPException

from credit_oracle.scoring.activity import ActivitySnapshot
from credit_oracle.services.activity import mock_activity_profile

app = FastAPI(title="Mock Activity Indexer", version="1.0.0")

@app.get("/health")
def health(): return {"status": "ok"}

@app.get("/activity/{address}")
def get_activity(address: str):
    if not address:
        raise HTTPException(status_code=400, detail="address required")
    snapshot: ActivitySnapshot = mock_activity_profile(address)
    payload = asdict(snapshot)
    payload.pop("address")
    return payload
