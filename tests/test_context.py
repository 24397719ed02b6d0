from fx_booking.context import TransformationContext


def _ctx(make_record, make_group, family, currency="EUR"):
    return TransformationContext(
        group=make_group(make_record()),
        rule_configs=(),
        input_currency=currency,
        currency_family=family,
        rule_id="R-1",
    )


def test_flip_variant_picks_first_numbered_member(make_record, make_group):
    ctx = _ctx(make_record, make_group, ("EUR", "EUR1", "EUR2"))
    assert ctx.flip_currency_variant == "EUR1"


def test_flip_variant_falls_back_to_input_currency(make_record, make_group):
    ctx = _ctx(make_record, make_group, ("EUR", "EURX"))
    assert ctx.flip_currency_variant == "EUR"


def test_family_membership(make_record, make_group):
    ctx = _ctx(make_record, make_group, ("EUR", "EUR1"))
    assert ctx.in_family("EUR1")
    assert not ctx.in_family("USD")
    assert not ctx.in_family(None)
    assert ctx.sibling_groups is None
