"""Tests for option extraction from variation titles."""
from services.product_creation_service import (
    extract_options, normalize_title, option_name_for, split_variation_title
)


def titles(*values):
    return [{'title': value} for value in values]


class TestExtractOptions:

    def test_two_axes(self):
        options = extract_options(titles('Red / Small', 'Red / Medium', 'Blue / Large'))

        assert options == {'Color': ['Red', 'Blue'], 'Size': ['Small', 'Medium', 'Large']}
        assert list(options) == ['Color', 'Size']

    def test_three_axes_keep_positional_names(self):
        options = extract_options(titles('Red / S / Cotton', 'Blue / M / Linen', 'Red / S / Linen'))

        assert list(options) == ['Color', 'Size', 'Material']
        assert options['Material'] == ['Cotton', 'Linen']

    def test_single_segment(self):
        assert extract_options(titles('Red', 'Blue', 'Red')) == {'Color': ['Red', 'Blue']}

    def test_segments_are_trimmed(self):
        assert extract_options(titles('  Red/Small ', 'Red /  Small')) == {'Color': ['Red'], 'Size': ['Small']}

    def test_empty_segments_are_skipped(self):
        options = extract_options(titles('Red / / Cotton', 'Blue / M'))
        assert options == {'Color': ['Red', 'Blue'], 'Size': ['M'], 'Material': ['Cotton']}

    def test_key_order_follows_position_not_first_sighting(self):
        options = extract_options(titles(' / Small', 'Red / Medium'))
        assert list(options) == ['Color', 'Size']

    def test_fourth_segment_falls_back_to_numbered_option(self):
        options = extract_options(titles('Red / S / Cotton / Slim'))
        assert list(options) == ['Color', 'Size', 'Material', 'Option4']

    def test_empty_input(self):
        assert extract_options([]) == {}


class TestTitleHelpers:

    def test_option_names(self):
        assert [option_name_for(i) for i in range(5)] == ['Color', 'Size', 'Material', 'Option4', 'Option5']

    def test_split_keeps_empty_positions(self):
        assert split_variation_title('Red //Cotton') == ['Red', '', 'Cotton']

    def test_normalize_matches_shopify_title(self):
        assert normalize_title('Red/Small') == 'Red / Small'
        assert normalize_title(' Red /  Small ') == normalize_title('Red / Small')
