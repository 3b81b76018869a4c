from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from core.auth import get_identity
from core.database import get_db
from schemas import DeviceListResponse
from services.devices import delete_device_link, list_user_devices
from services.identity import Identity

router = APIRouter(prefix="/v1/devices", tags=["devices"])


@router.get("", response_model=DeviceListResponse)
def get_devices(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return {
        "current_device_id": identity.device_id,
        "devices": list_user_devices(db, identity.user_id, identity.device_id),
    }


@router.delete("/{device_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_device(device_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Unlink another device; the calling device cannot remove itself."""
    delete_device_link(db, identity.user_id, device_id, identity.device_id)
    db.commit()
    return None
