from mechanicbd.api.client import ApiClient
from mechanicbd.api.envelope import parse_data
from mechanicbd.schemas.payment import Payment, PaymentCreated, PaymentCreateRequest, PaymentVerifyRequest


async def create_payment(api: ApiClient, body: PaymentCreateRequest) -> PaymentCreated:
    payload = await api.post("/payments", body.to_payload())
    return parse_data(payload, PaymentCreated)


async def verify_payment(api: ApiClient, body: PaymentVerifyRequest) -> Payment | None:
    payload = await api.post("/payments/verify", body.to_payload())
    data = payload.get("data")
    if isinstance(data, dict) and "payment" in data:
        return parse_data(payload, Payment, "payment")
    return None
