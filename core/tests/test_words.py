from datetime import date
from decimal import Decimal

from django.test import SimpleTestCase

from core.services.documents import render_template
from core.services.late_fees import compute_late_fee
from core.utils.words import (
    amount_to_words,
    installment_concept,
    money,
    ordinal_text,
    payment_method_label,
    status_color,
    status_label,
)
from core.utils_dates import due_date_for, signed_days


class AmountToWordsTests(SimpleTestCase):
    def test_thousands_with_cents(self):
        self.assertEqual(amount_to_words(Decimal("1250.50")), "MIL DOSCIENTOS CINCUENTA CON 50/100 SOLES")

    def test_zero(self):
        self.assertEqual(amount_to_words(0), "CERO CON 00/100 SOLES")

    def test_cien_and_ciento(self):
        self.assertEqual(amount_to_words(100), "CIEN CON 00/100 SOLES")
        self.assertEqual(amount_to_words(121), "CIENTO VEINTIUNO CON 00/100 SOLES")

    def test_tens_with_units(self):
        self.assertEqual(
            amount_to_words(Decimal("345.05")),
            "TRESCIENTOS CUARENTA Y CINCO CON 05/100 SOLES",
        )

    def test_apocope_before_mil(self):
        self.assertEqual(amount_to_words(21000), "VEINTIÚN MIL CON 00/100 SOLES")
        self.assertEqual(amount_to_words(31000), "TREINTA Y UN MIL CON 00/100 SOLES")

    def test_veinti_compounds_keep_accents(self):
        self.assertEqual(amount_to_words(22), "VEINTIDÓS CON 00/100 SOLES")
        self.assertEqual(amount_to_words(23), "VEINTITRÉS CON 00/100 SOLES")
        self.assertEqual(amount_to_words(Decimal("226.10")), "DOSCIENTOS VEINTISÉIS CON 10/100 SOLES")

    def test_millions(self):
        self.assertEqual(amount_to_words(1000000), "UN MILLÓN CON 00/100 SOLES")
        self.assertEqual(
            amount_to_words(Decimal("2500000.75")),
            "DOS MILLONES QUINIENTOS MIL CON 75/100 SOLES",
        )
        self.assertEqual(
            amount_to_words(21001001),
            "VEINTIÚN MILLONES MIL UNO CON 00/100 SOLES",
        )

    def test_amount_out_of_range(self):
        with self.assertRaises(ValueError):
            amount_to_words(Decimal("1000000000"))

    def test_string_with_comma(self):
        self.assertEqual(amount_to_words("15,5"), "QUINCE CON 50/100 SOLES")


class LabelsTests(SimpleTestCase):
    def test_installment_concept(self):
        self.assertEqual(installment_concept(1), "Matrícula + Primera Cuota")
        self.assertEqual(installment_concept(3), "Cuota Tercera")
        self.assertEqual(ordinal_text(13), "13ª")

    def test_money(self):
        self.assertEqual(money(Decimal("1250.5")), "S/ 1,250.50")
        self.assertEqual(money(None), "S/ 0.00")

    def test_method_and_status(self):
        self.assertEqual(payment_method_label("yape"), "Yape")
        self.assertEqual(payment_method_label("cheque"), "Cheque")
        self.assertEqual(status_label("overdue"), "VENCIDO")
        self.assertEqual(status_color("verified"), "#17BC91")
        self.assertEqual(status_color("inconnu"), "#64748b")


class DatesAndFeesTests(SimpleTestCase):
    def test_due_date_adds_months_with_clamp(self):
        base = date(2025, 1, 31)
        self.assertEqual(due_date_for(base, 1), base)
        self.assertEqual(due_date_for(base, 2), date(2025, 2, 28))
        self.assertEqual(due_date_for(base, 13), date(2026, 1, 31))

    def test_signed_days(self):
        self.assertEqual(signed_days(date(2025, 1, 10), date(2025, 1, 15)), 5)
        self.assertEqual(signed_days(date(2025, 1, 15), date(2025, 1, 10)), -5)

    def test_late_fee_is_prorated_per_day(self):
        self.assertEqual(compute_late_fee(Decimal("300.00"), Decimal("5.00"), 10), Decimal("5.00"))
        # 250 x 5% / 30 x 7 = 2.9166... => 2.92
        self.assertEqual(compute_late_fee(250, "5", 7), Decimal("2.92"))
        self.assertEqual(compute_late_fee(300, 5, 0), Decimal("0.00"))


class RenderTemplateTests(SimpleTestCase):
    def test_known_keys_replaced_unknown_kept(self):
        out = render_template(
            "Hola {{nombre}}, cuota {{ numero }} {{desconocido}}",
            {"nombre": "Ana", "numero": 2},
        )
        self.assertEqual(out, "Hola Ana, cuota 2 {{desconocido}}")

    def test_empty_template(self):
        self.assertEqual(render_template("", {"a": 1}), "")
