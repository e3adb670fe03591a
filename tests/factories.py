from app.services.order_service import ShippingAddress

CUSTOMER_WALLET = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
OTHER_WALLET = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
SIGNATURE_A = "5" * 87 + "A"
SIGNATURE_B = "4" * 87 + "B"


def shipping_address() -> ShippingAddress:
    return ShippingAddress(
        full_name="Jane Doe",
        street_address="1 Market Street",
        city="Tallinn",
        postal_code="10111",
        phone_number="+3725550000",
    )


def shipping_payload() -> dict:
    return {
        "full_name": "Jane Doe",
        "street_address": "1 Market Street",
        "city": "Tallinn",
        "postal_code": "10111",
        "phone_number": "+3725550000",
    }
