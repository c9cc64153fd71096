import json
import unittest
from decimal import Decimal

from ledgerlens.core.models import Balance
from ledgerlens.services.normalizer import (
    TF_SELL,
    apply_trade_valuation,
    exclude_fee,
    ledger_time_to_iso,
    normalize_batch,
    normalize_transaction,
    resolve_details,
)

from ledger_fixtures import RLUSD_HEX, account_root, history_item, meta, payment, trust_line

ALICE = "rAlice"
BOB = "rBob"
CAROL = "rCarol"
ISSUER = "rIssuer"


def _payment_item(**overrides):
    tx = payment(ALICE, BOB, "10000000", "H1")
    tx.update(overrides)
    m = meta(
        account_root(ALICE, "100000000", "89999988"),
        account_root(BOB, "5000000", "15000000"),
    )
    return history_item(tx, m)


def _tx(tx_type, account=ALICE, fee="12", **fields):
    tx = {"TransactionType": tx_type, "Account": account, "Fee": fee, "hash": "H9", "date": 0}
    tx.update(fields)
    return tx


def _fee_only_meta(account=ALICE):
    return meta(account_root(account, "50000000", "49999988"))


class PaymentTests(unittest.TestCase):
    def test_sender_sees_amount_without_fee(self) -> None:
        tx = normalize_transaction(_payment_item(), ALICE)

        self.assertIsNotNone(tx)
        self.assertEqual(tx.id, "H1")
        self.assertEqual(tx.type, "Payment")
        self.assertEqual(tx.fee, "0.000012")
        self.assertEqual(tx.balance_changes, [Balance(currency="XRP", value="-10")])
        self.assertEqual(tx.details_key, "details_payment_to")
        self.assertEqual(tx.details_params, {"address": BOB})
        self.assertEqual(tx.result, "tesSUCCESS")

    def test_receiver_sees_incoming_payment(self) -> None:
        tx = normalize_transaction(_payment_item(), BOB)

        self.assertEqual(tx.balance_changes, [Balance(currency="XRP", value="10")])
        self.assertEqual(tx.details_key, "details_payment_from")
        self.assertEqual(tx.details_params, {"address": ALICE})

    def test_all_parties_changes_are_kept(self) -> None:
        tx = normalize_transaction(_payment_item(), BOB)
        self.assertEqual(
            [(c.account, c.value) for c in tx.all_balance_changes],
            [(ALICE, "-10.000012"), (BOB, "10")],
        )

    def test_known_counterparty_uses_labelled_key(self) -> None:
        tx = normalize_transaction(_payment_item(), ALICE, labels={BOB: "Bitstamp"})

        self.assertEqual(tx.details_key, "details_payment_to_known")
        self.assertEqual(tx.details_params, {"label": "Bitstamp", "address": BOB})

    def test_uninvolved_account_is_suppressed(self) -> None:
        self.assertIsNone(normalize_transaction(_payment_item(), CAROL))

    def test_raw_data_is_pretty_printed_record(self) -> None:
        item = _payment_item()
        tx = normalize_transaction(item, ALICE)
        self.assertEqual(tx.raw_data, json.dumps(item, indent=2))


class FeeTests(unittest.TestCase):
    def test_fee_only_record_keeps_no_xrp_change(self) -> None:
        tx = normalize_transaction(history_item(_tx("AccountSet"), _fee_only_meta()), ALICE)

        self.assertIsNotNone(tx)
        self.assertEqual(tx.balance_changes, [])
        self.assertEqual(tx.fee, "0.000012")
        self.assertEqual(tx.details_key, "details_account_set")
        self.assertEqual(tx.details_params, {})

    def test_fee_payer_without_metadata_changes_is_still_reported(self) -> None:
        tx = normalize_transaction(history_item(_tx("AccountSet"), meta()), ALICE)

        self.assertIsNotNone(tx)
        self.assertEqual(tx.balance_changes, [])

    def test_zero_fee_and_no_changes_is_suppressed(self) -> None:
        self.assertIsNone(normalize_transaction(history_item(_tx("AccountSet", fee="0"), meta()), ALICE))

    def test_fee_is_non_negative_for_receiver(self) -> None:
        tx = normalize_transaction(_payment_item(), BOB)
        self.assertFalse(tx.fee.startswith("-"))

    def test_exclude_fee_touches_first_xrp_entry_only(self) -> None:
        changes = [
            Balance(currency="USD", value="-5", issuer=ISSUER),
            Balance(currency="XRP", value="-10.000012"),
            Balance(currency="XRP", value="-1"),
        ]
        self.assertEqual(
            exclude_fee(changes, Decimal("0.000012")),
            [
                Balance(currency="USD", value="-5", issuer=ISSUER),
                Balance(currency="XRP", value="-10"),
                Balance(currency="XRP", value="-1"),
            ],
        )

    def test_exclude_fee_drops_entry_within_epsilon(self) -> None:
        changes = [Balance(currency="XRP", value="-0.0000120000000001")]
        self.assertEqual(exclude_fee(changes, Decimal("0.000012")), [])


class OfferCreateTests(unittest.TestCase):
    def _filled_item(self):
        m = meta(
            trust_line(ALICE, ISSUER, "USD", "0", "50"),
            account_root(ALICE, "200000000", "99999988"),
        )
        tx = _tx("OfferCreate", TakerGets="100000000", TakerPays={"currency": "USD", "value": "50", "issuer": ISSUER})
        return history_item(tx, m)

    def test_filled_order_reports_legs(self) -> None:
        tx = normalize_transaction(self._filled_item(), ALICE)

        self.assertEqual(tx.details_key, "details_dex_order")
        self.assertEqual(
            tx.details_params,
            {"paid_amount": "100", "paid_currency": "XRP", "got_amount": "50", "got_currency": "USD"},
        )

    def test_non_xrp_debit_is_preferred_as_paid_leg(self) -> None:
        changes = [
            Balance(currency="XRP", value="-1"),
            Balance(currency="USD", value="-5", issuer=ISSUER),
            Balance(currency="EUR", value="3", issuer=ISSUER),
        ]
        key, params = resolve_details(_tx("OfferCreate"), ALICE, changes, {})

        self.assertEqual(key, "details_dex_order")
        self.assertEqual(params["paid_amount"], "5")
        self.assertEqual(params["paid_currency"], "USD")
        self.assertEqual(params["got_currency"], "EUR")

    def test_unfilled_order_reports_stated_terms(self) -> None:
        tx = _tx("OfferCreate", Flags=0, TakerGets="1000000", TakerPays={"currency": "USD", "value": "0.5", "issuer": ISSUER})
        record = normalize_transaction(history_item(tx, _fee_only_meta()), ALICE)

        self.assertEqual(record.details_key, "details_dex_unfilled")
        self.assertEqual(
            record.details_params,
            {"paid_amount": "1", "paid_currency": "XRP", "got_amount": "0.5", "got_currency": "USD"},
        )

    def test_sell_flag_swaps_stated_terms(self) -> None:
        tx = _tx(
            "OfferCreate",
            Flags=TF_SELL,
            TakerGets="1000000",
            TakerPays={"currency": "USD", "value": "0.5", "issuer": ISSUER},
        )
        record = normalize_transaction(history_item(tx, _fee_only_meta()), ALICE)

        self.assertEqual(
            record.details_params,
            {"paid_amount": "0.5", "paid_currency": "USD", "got_amount": "1", "got_currency": "XRP"},
        )

    def test_unrelated_flag_bits_do_not_swap(self) -> None:
        tx = _tx("OfferCreate", Flags=0x00020000, TakerGets="1000000", TakerPays={"currency": "USD", "value": "0.5"})
        record = normalize_transaction(history_item(tx, _fee_only_meta()), ALICE)
        self.assertEqual(record.details_params["paid_currency"], "XRP")

    def test_failed_result_is_carried(self) -> None:
        tx = _tx("OfferCreate", TakerGets="1000000", TakerPays="2000000")
        record = normalize_transaction(history_item(tx, meta(account_root(ALICE, "50000000", "49999988"), result="tecUNFUNDED_OFFER")), ALICE)
        self.assertEqual(record.result, "tecUNFUNDED_OFFER")


class OtherTypeTests(unittest.TestCase):
    def test_trust_set_decodes_limit(self) -> None:
        tx = _tx("TrustSet", LimitAmount={"currency": RLUSD_HEX, "value": "1000", "issuer": ISSUER})
        record = normalize_transaction(history_item(tx, _fee_only_meta()), ALICE)

        self.assertEqual(record.details_key, "details_trust_set")
        self.assertEqual(record.details_params, {"amount": "1000", "currency": "RLUSD", "address": ISSUER})

    def test_trust_set_with_known_issuer(self) -> None:
        tx = _tx("TrustSet", LimitAmount={"currency": "USD", "value": "10", "issuer": ISSUER})
        record = normalize_transaction(history_item(tx, _fee_only_meta()), ALICE, labels={ISSUER: "Gatehub"})

        self.assertEqual(record.details_key, "details_trust_set_known")
        self.assertEqual(record.details_params["label"], "Gatehub")

    def test_offer_cancel(self) -> None:
        record = normalize_transaction(history_item(_tx("OfferCancel", OfferSequence=4), _fee_only_meta()), ALICE)
        self.assertEqual((record.details_key, record.details_params), ("details_offer_cancel", {}))

    def test_unknown_type_falls_back(self) -> None:
        record = normalize_transaction(history_item(_tx("EscrowCreate"), _fee_only_meta()), ALICE)
        self.assertEqual((record.details_key, record.details_params), ("details_fallback", {"type": "EscrowCreate"}))


class RecordShapeTests(unittest.TestCase):
    def test_dates(self) -> None:
        self.assertEqual(ledger_time_to_iso(0), "2000-01-01T00:00:00.000Z")
        self.assertEqual(ledger_time_to_iso(757382400), "2024-01-01T00:00:00.000Z")
        self.assertEqual(ledger_time_to_iso(None), "N/A")

    def test_missing_date_gives_sentinel(self) -> None:
        item = history_item(payment(ALICE, BOB, "10000000", "H1", date=None), _fee_only_meta())
        self.assertEqual(normalize_transaction(item, ALICE).date, "N/A")

    def test_flat_tx_command_shape(self) -> None:
        item = dict(payment(ALICE, BOB, "10000000", "H1"), meta=_payment_item()["meta"], validated=True)
        record = normalize_transaction(item, ALICE)

        self.assertEqual(record.id, "H1")
        self.assertEqual(record.balance_changes, [Balance(currency="XRP", value="-10")])

    def test_api_v2_shape_takes_hash_from_wrapper(self) -> None:
        body = payment(ALICE, BOB, "10000000", "ignored")
        del body["hash"]
        item = {"tx_json": body, "meta": _payment_item()["meta"], "hash": "HV2", "validated": True}
        self.assertEqual(normalize_transaction(item, ALICE).id, "HV2")

    def test_malformed_records_are_dropped(self) -> None:
        bad_limit = trust_line(ALICE, ISSUER, "USD", "0", "5")
        bad_limit["ModifiedNode"]["FinalFields"]["LowLimit"] = "oops"
        bad_fields = account_root(ALICE, "100", "50")
        bad_fields["ModifiedNode"]["FinalFields"] = ["x"]

        bad = [
            "not a record",
            {"tx": payment(ALICE, BOB, "1", "H2")},
            history_item(_tx("Payment", fee="abc"), _fee_only_meta()),
            history_item({"Account": ALICE, "Fee": "12"}, _fee_only_meta()),
            history_item(_tx("Payment"), meta(account_root(ALICE, "x", "1"))),
            history_item(_tx("Payment"), meta(bad_limit)),
            history_item(_tx("Payment"), meta(bad_fields)),
        ]
        for item in bad:
            self.assertIsNone(normalize_transaction(item, ALICE))

    def test_wrong_shaped_nodes_do_not_abort_the_batch(self) -> None:
        bad_limit = trust_line(ALICE, ISSUER, "USD", "0", "5")
        bad_limit["ModifiedNode"]["FinalFields"]["LowLimit"] = "oops"
        bad_fields = account_root(ALICE, "100", "50")
        bad_fields["ModifiedNode"]["FinalFields"] = ["x"]
        items = [
            _payment_item(),
            history_item(_tx("Payment"), meta(bad_limit)),
            history_item(_tx("Payment"), meta(bad_fields)),
        ]
        self.assertEqual([t.id for t in normalize_batch(items, ALICE)], ["H1"])

    def test_batch_keeps_only_decodable_visible_records(self) -> None:
        items = [
            _payment_item(),
            {"tx": payment(ALICE, BOB, "1", "H2")},
            history_item(payment(BOB, CAROL, "1", "H3"), meta(account_root(CAROL, "0", "1"))),
        ]
        self.assertEqual([t.id for t in normalize_batch(items, ALICE)], ["H1"])


class TradeValuationTests(unittest.TestCase):
    def test_xrp_usd_fill_is_priced(self) -> None:
        m = meta(
            trust_line(ALICE, ISSUER, "USD", "0", "50"),
            account_root(ALICE, "200000000", "99999988"),
        )
        tx = _tx("OfferCreate", TakerGets="100000000", TakerPays={"currency": "USD", "value": "50", "issuer": ISSUER})
        [record] = normalize_batch([history_item(tx, m)], ALICE)

        self.assertEqual(record.xrp_value_usd, Decimal("50"))
        self.assertEqual(record.xrp_price_at_tx, Decimal("0.5"))

    def test_rlusd_counts_as_usd(self) -> None:
        m = meta(
            trust_line(ALICE, ISSUER, RLUSD_HEX, "10", "0"),
            account_root(ALICE, "0", "20000000"),
        )
        record = normalize_transaction(history_item(_tx("OfferCreate", fee="0"), m), ALICE)
        valued = apply_trade_valuation(record)

        self.assertEqual(valued.xrp_value_usd, Decimal("10"))
        self.assertEqual(valued.xrp_price_at_tx, Decimal("0.5"))

    def test_other_pairs_and_types_are_not_priced(self) -> None:
        m = meta(
            trust_line(ALICE, ISSUER, "EUR", "0", "50"),
            account_root(ALICE, "200000000", "99999988"),
        )
        [eur] = normalize_batch([history_item(_tx("OfferCreate"), m)], ALICE)
        [pay] = normalize_batch([_payment_item()], ALICE)

        self.assertIsNone(eur.xrp_value_usd)
        self.assertIsNone(pay.xrp_price_at_tx)


if __name__ == "__main__":
    unittest.main()
