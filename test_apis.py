"""
Manual walkthrough of the return lifecycle against a running dev server.

Needs an order with a line item and a return shipping option in the
database (create them in /admin/). Then:

    python manage.py runserver
    python test_apis.py <order_id> <line_item_id> <shipping_option_id>
"""

import sys

import requests

BASE = 'http://127.0.0.1:8000/api/v1/returns'


def main(order_id, item_id, option_id):
    # Step 1: Request a return for one unit
    r = requests.post(f'{BASE}/', json={
        "order_id": order_id,
        "items": [{"item_id": item_id, "quantity": 1, "note": "Shoes are too tight"}],
        "shipping_method": {"option_id": option_id},
        "idempotency_key": f"walkthrough-{order_id}-{item_id}",
    })
    data = r.json()
    if r.status_code != 201:
        print(f"STEP 1 - Failed ({r.status_code}): {data}")
        return
    return_id = data['id']
    print(f"STEP 1 - Created: {return_id} | Status: {data['status']} | Refund: {data['refund_amount']}")

    # Step 2: Book the return shipment
    r = requests.post(f'{BASE}/{return_id}/fulfill/')
    print(f"STEP 2 - Fulfilled: {r.json().get('shipping_data')}")

    # Step 3: Warehouse receives the item
    r = requests.post(f'{BASE}/{return_id}/receive/', json={
        "items": [{"item_id": item_id, "quantity": 1}],
    })
    print(f"STEP 3 - Received: {r.json()['status']}")

    # Step 4: Timeline
    r = requests.get(f'{BASE}/{return_id}/status/')
    for entry in r.json()['timeline']:
        print(f"  {entry['created_at']}  {entry['from_status'] or '-'} -> {entry['to_status']}  {entry['comment']}")

    # Step 5: A received return can no longer be canceled
    r = requests.post(f'{BASE}/{return_id}/cancel/')
    print(f"STEP 5 - Cancel after receive: {r.status_code} {r.json()}")


if __name__ == '__main__':
    if len(sys.argv) != 4:
        print(__doc__)
        sys.exit(1)
    main(*(int(arg) for arg in sys.argv[1:]))
