from django.test import SimpleTestCase
from rest_framework import serializers

from core.validators import (
    normalize_phone_number,
    is_valid_kenyan_phone,
    format_phone_display,
    validate_kenyan_phone,
)


class NormalizePhoneNumberTests(SimpleTestCase):

    def test_local_number_gets_country_code(self):
        self.assertEqual(normalize_phone_number('0712345678'), '254712345678')

    def test_strips_formatting_characters(self):
        self.assertEqual(normalize_phone_number('+254 712-345-678'), '254712345678')
        self.assertEqual(normalize_phone_number('(0712) 345 678'), '254712345678')

    def test_bare_subscriber_number(self):
        self.assertEqual(normalize_phone_number('712345678'), '254712345678')
        self.assertEqual(normalize_phone_number('112345678'), '254112345678')

    def test_never_raises(self):
        self.assertEqual(normalize_phone_number(None), '')
        self.assertEqual(normalize_phone_number(''), '')
        self.assertEqual(normalize_phone_number('abc'), 'abc')

    def test_idempotent(self):
        for raw in ['0712345678', '+254 712 345 678', '712345678', '0112345678', '123', 'abc', '']:
            once = normalize_phone_number(raw)
            self.assertEqual(normalize_phone_number(once), once, raw)


class PhoneValidationTests(SimpleTestCase):

    def test_valid_numbers(self):
        for raw in ['0712345678', '254712345678', '+254712345678', '0112345678', '712 345 678']:
            self.assertTrue(is_valid_kenyan_phone(raw), raw)

    def test_invalid_numbers(self):
        for raw in ['123', '0812345678', '07123456789', '25471234567', '', None]:
            self.assertFalse(is_valid_kenyan_phone(raw), raw)

    def test_serializer_validator(self):
        validate_kenyan_phone('0712345678')
        with self.assertRaises(serializers.ValidationError):
            validate_kenyan_phone('123')


class FormatPhoneDisplayTests(SimpleTestCase):

    def test_formats_normalizable_number(self):
        self.assertEqual(format_phone_display('0712345678'), '+254 712 345 678')

    def test_returns_input_unchanged_otherwise(self):
        self.assertEqual(format_phone_display('123'), '123')
        self.assertEqual(format_phone_display('not a phone'), 'not a phone')
