from decimal import Decimal

import pytest

from paymentbot.schemas.command_parser import (
    CommandParseError,
    parse_command_text,
    provider_for_command,
    split_args,
)


class TestSplitArgs:

    def test_quotes_group_words(self):
        assert split_args('29.99 "Premium plan" INV-7') == ["29.99", "Premium plan", "INV-7"]
        assert split_args("10 'Web design' REF") == ["10", "Web design", "REF"]

    def test_unbalanced_quotes(self):
        with pytest.raises(CommandParseError):
            split_args('10 "Web design')


class TestParseCommandText:

    def test_one_time_payment(self):
        req = parse_command_text('49.50 "Audit" INV-1')
        assert req.amount == Decimal("49.50")
        assert req.serviceName == "Audit"
        assert req.reference == "INV-1"
        assert req.isSubscription is False
        assert req.endCycles == 0

    def test_reference_is_optional(self):
        req = parse_command_text('5 "Tip"')
        assert req.reference is None

    def test_full_subscription(self):
        req = parse_command_text('29.99 "Premium" INV-7 yes week 2 12', provider="stripe")
        assert req.isSubscription is True
        assert req.interval == "week"
        assert req.intervalCount == 2
        assert req.endCycles == 12
        assert req.provider == "stripe"

    def test_subscription_fields_ignored_for_one_time(self):
        req = parse_command_text('10 "X" REF no week 2 12')
        assert req.isSubscription is False
        assert req.interval is None
        assert req.endCycles == 0

    @pytest.mark.parametrize(
        "text,message",
        [
            ("10", "invalid format"),
            ('abc "X"', "invalid amount"),
            ('-5 "X"', "greater than 0"),
            ('0 "X"', "greater than 0"),
            ('10 ""', "service name"),
            ('10 "X" REF yes fortnight', "invalid interval"),
            ('10 "X" REF yes month 0', "interval count"),
            ('10 "X" REF yes month 1 -3', "end cycles"),
            ('10 "X" REF yes month 1 many', "end cycles"),
            ('10 "X" REF yes year 1 1000000', "endCycles"),
        ],
    )
    def test_rejections(self, text, message):
        with pytest.raises(CommandParseError, match=message):
            parse_command_text(text)

    def test_too_many_decimals_is_a_parse_error(self):
        with pytest.raises(CommandParseError, match="amount"):
            parse_command_text('10.999 "X"')


def test_command_names_map_to_providers():
    assert provider_for_command("/create-stripe-link") == "stripe"
    assert provider_for_command("/create-airwallex-link") == "airwallex"
    with pytest.raises(CommandParseError, match="Unknown command"):
        provider_for_command("/create-invoice")
