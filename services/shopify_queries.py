"""
GraphQL documents for the product creation sequence.

Every builder is a pure function: the same input yields the same document.
Literal values are escaped before interpolation so titles, URLs and ids
containing quotes, backslashes, line breaks or other control characters
cannot break out of their string literal.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Mapping, Optional, Sequence, Union

# Backslash first so the escapes added afterwards are not doubled
_ESCAPES = (
    ('\\', '\\\\'),
    ('"', '\\"'),
    ('\n', '\\n'),
    ('\r', '\\r'),
)

_UNESCAPES = {
    '\\': '\\',
    '"': '"',
    '/': '/',
    'n': '\n',
    'r': '\r',
    't': '\t',
    'b': '\b',
    'f': '\f',
}

MAX_CONNECTION_SIZE = 250


def escape_graphql_string(value) -> str:
    """Escape a value for use inside a double-quoted GraphQL string literal."""
    text = str(value)
    for raw, escaped in _ESCAPES:
        text = text.replace(raw, escaped)
    # Remaining control characters are not allowed raw in a string literal
    return ''.join(
        char if char == '\t' or ord(char) >= 0x20 else f"\\u{ord(char):04x}"
        for char in text
    )


def unescape_graphql_string(literal: str) -> str:
    """Inverse of escape_graphql_string for the body of a string literal."""
    chars = []
    i = 0
    while i < len(literal):
        char = literal[i]
        if char != '\\':
            chars.append(char)
            i += 1
            continue

        if i + 1 >= len(literal):
            raise ValueError("Dangling backslash in string literal")

        code = literal[i + 1]
        if code == 'u':
            hex_digits = literal[i + 2:i + 6]
            if len(hex_digits) != 4:
                raise ValueError(f"Invalid unicode escape: \\u{hex_digits}")
            chars.append(chr(int(hex_digits, 16)))
            i += 6
            continue

        if code not in _UNESCAPES:
            raise ValueError(f"Unknown escape sequence: \\{code}")
        chars.append(_UNESCAPES[code])
        i += 2

    return ''.join(chars)


def quote(value) -> str:
    """Render a value as an escaped GraphQL string literal."""
    return f'"{escape_graphql_string(value)}"'


def format_price(price: Union[Decimal, str, int, float]) -> str:
    """Render a price as a plain decimal string (no exponent)."""
    return format(Decimal(str(price)), 'f')


@dataclass(frozen=True)
class OptionValueInput:
    """One option value of a variant, resolved to the remote option id."""
    option_id: str
    name: str


@dataclass
class VariantInput:
    """Input for one variant of productVariantsBulkCreate."""
    price: Union[Decimal, str]
    option_values: List[OptionValueInput] = field(default_factory=list)
    inventory_quantity: Optional[int] = None
    location_id: Optional[str] = None

    def has_inventory(self) -> bool:
        return self.inventory_quantity is not None and bool(self.location_id)


def build_product_create_mutation(title: str, description: Optional[str],
                                  options: Mapping[str, Sequence[str]]) -> str:
    """productCreate with its option schema; returns the created options."""
    option_inputs = []
    for name, values in options.items():
        value_inputs = ", ".join(f"{{name: {quote(value)}}}" for value in values)
        option_inputs.append(f"{{name: {quote(name)}, values: [{value_inputs}]}}")

    fields = [f"title: {quote(title)}"]
    if description is not None:
        fields.append(f"descriptionHtml: {quote(description)}")
    if option_inputs:
        fields.append(f"productOptions: [{', '.join(option_inputs)}]")

    return f"""
mutation {{
  productCreate(product: {{{', '.join(fields)}}}) {{
    product {{
      id
      title
      options {{
        id
        name
        position
        values
      }}
    }}
    userErrors {{
      field
      message
    }}
  }}
}}
"""


def _variant_input(variant: VariantInput) -> str:
    option_values = ", ".join(
        f"{{optionId: {quote(value.option_id)}, name: {quote(value.name)}}}"
        for value in variant.option_values
    )
    fields = [
        f"price: {quote(format_price(variant.price))}",
        f"optionValues: [{option_values}]",
    ]
    if variant.has_inventory():
        fields.append(
            f"inventoryQuantities: [{{availableQuantity: {int(variant.inventory_quantity)}, "
            f"locationId: {quote(variant.location_id)}}}]"
        )
    return f"{{{', '.join(fields)}}}"


def build_variants_bulk_create_mutation(product_id: str, variants: Sequence[VariantInput]) -> str:
    """productVariantsBulkCreate for all variants at once, dropping the default variant."""
    variant_inputs = ",\n      ".join(_variant_input(variant) for variant in variants)

    return f"""
mutation {{
  productVariantsBulkCreate(
    productId: {quote(product_id)},
    strategy: REMOVE_STANDALONE_VARIANT,
    variants: [
      {variant_inputs}
    ]
  ) {{
    productVariants {{
      id
      title
      price
      sku
      inventoryQuantity
    }}
    userErrors {{
      field
      message
    }}
  }}
}}
"""


def build_media_create_mutation(product_id: str, image_url: str, alt: Optional[str] = None) -> str:
    """productCreateMedia for a single image URL."""
    media_fields = [
        f"originalSource: {quote(image_url)}",
        "mediaContentType: IMAGE",
    ]
    if alt:
        media_fields.append(f"alt: {quote(alt)}")

    return f"""
mutation {{
  productCreateMedia(productId: {quote(product_id)}, media: [{{{', '.join(media_fields)}}}]) {{
    media {{
      id
      status
    }}
    mediaUserErrors {{
      field
      message
    }}
  }}
}}
"""


def build_media_status_query(product_id: str) -> str:
    """All media of a product with their processing status."""
    return f"""
query {{
  product(id: {quote(product_id)}) {{
    media(first: {MAX_CONNECTION_SIZE}) {{
      edges {{
        node {{
          id
          status
        }}
      }}
    }}
  }}
}}
"""


def build_variant_append_media_mutation(product_id: str, variant_id: str, media_id: str) -> str:
    """
    productVariantAppendMedia for exactly one variant and one media item.

    Shopify rejects a call listing the same variant twice, so multiple images
    for one variant go out as separate mutations.
    """
    return f"""
mutation {{
  productVariantAppendMedia(
    productId: {quote(product_id)},
    variantMedia: [{{variantId: {quote(variant_id)}, mediaIds: [{quote(media_id)}]}}]
  ) {{
    productVariants {{
      id
    }}
    userErrors {{
      field
      message
    }}
  }}
}}
"""


def build_variants_query(product_id: str) -> str:
    """All variants of a product."""
    return f"""
query {{
  product(id: {quote(product_id)}) {{
    variants(first: {MAX_CONNECTION_SIZE}) {{
      edges {{
        node {{
          id
          title
          price
          sku
          inventoryQuantity
        }}
      }}
    }}
  }}
}}
"""
