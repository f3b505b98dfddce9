"""Schema definitions for request/response validation."""
from marshmallow import Schema, fields, validate, validates, ValidationError, EXCLUDE

MAX_TITLE_LENGTH = 255
MAX_OPTION_SEGMENTS = 3

class ImageInputSchema(Schema):
    """Schema for an image attached to a variation."""

    class Meta:
        unknown = EXCLUDE

    src = fields.Url(required=True, relative=False, schemes={'http', 'https'})

class VariationInputSchema(Schema):
    """Schema for one variation of a product creation request."""

    class Meta:
        unknown = EXCLUDE

    title = fields.String(required=True, validate=validate.Length(min=1, max=MAX_TITLE_LENGTH))
    price = fields.Decimal(required=True, validate=validate.Range(min=0))
    inventory_quantity = fields.Integer(
        load_default=None, allow_none=True, strict=True, validate=validate.Range(min=0)
    )
    images = fields.List(fields.Nested(ImageInputSchema), load_default=list, allow_none=True)

    @validates('title')
    def validate_title(self, value, **kwargs):
        segments = [segment.strip() for segment in value.split('/')]
        if len(segments) > MAX_OPTION_SEGMENTS:
            raise ValidationError(
                f"Title can hold at most {MAX_OPTION_SEGMENTS} slash-separated option values."
            )
        if not any(segments):
            raise ValidationError("Title must contain at least one option value.")

class ProductCreateSchema(Schema):
    """Schema for product creation requests."""

    class Meta:
        unknown = EXCLUDE

    title = fields.String(required=True, validate=validate.Length(min=1, max=MAX_TITLE_LENGTH))
    description = fields.String(load_default=None, allow_none=True)
    variations = fields.List(
        fields.Nested(VariationInputSchema), required=True, validate=validate.Length(min=1)
    )

class ImageSchema(Schema):
    """Schema for stored image responses."""
    id = fields.Integer()
    src = fields.String()

class VariationSchema(Schema):
    """Schema for stored variation responses."""
    id = fields.Integer()
    shopify_variant_id = fields.String()
    title = fields.String()
    price = fields.String()
    inventory_quantity = fields.Integer()
    images = fields.List(fields.Nested(ImageSchema))

class ProductSchema(Schema):
    """Schema for stored product responses."""
    id = fields.Integer()
    shopify_product_id = fields.String()
    title = fields.String()
    description = fields.String(allow_none=True)
    created_at = fields.DateTime()
    updated_at = fields.DateTime()
    variations = fields.List(fields.Nested(VariationSchema))
