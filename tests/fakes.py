from apps.payments.gateway import GatewayResult, GatewayUnavailable


class FakeGateway:
    """Stand-in for Chapa, selected through the PAYMENT_GATEWAY setting."""
    mode = 'success'
    charges = []

    def charge(self, amount, currency, payer, payee):
        FakeGateway.charges.append((amount, currency, payer.pk, payee.pk))
        if FakeGateway.mode == 'unavailable':
            raise GatewayUnavailable("connection refused")
        if FakeGateway.mode == 'failure':
            return GatewayResult(False, 'fake-ref', 'Card declined')
        return GatewayResult(True, f'fake-ref-{len(FakeGateway.charges)}', '')

    @classmethod
    def reset(cls):
        cls.mode = 'success'
        cls.charges = []
