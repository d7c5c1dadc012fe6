"""Extension points for the payment flow.

All signals are sent with `sender=Transaction` and run synchronously, in
registration order, before the flow continues. What a receiver's return
value means is signal-specific:

- `after_create_item_bag(items, order)`: return a list to replace the bag.
- `build_payment_request(params, transaction)`: mutate `params` in place or
  return a new mapping to replace it.
- `before_gateway_request_send(type, request, transaction)`: return
  ``False`` to veto the send; the transaction is then marked failed.
- `before_send_payment_request(request_data, request, transaction)`: return
  replacement wire data; the last non-None value is sent instead.
- `before/after_capture_transaction`, `before/after_refund_transaction`
  (`transaction`): notification only.

Receivers must return promptly; nothing here imposes a timeout.
"""

from django.dispatch import Signal

after_create_item_bag = Signal()
build_payment_request = Signal()
before_gateway_request_send = Signal()
before_send_payment_request = Signal()
before_capture_transaction = Signal()
after_capture_transaction = Signal()
before_refund_transaction = Signal()
after_refund_transaction = Signal()
