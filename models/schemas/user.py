from marshmallow import Schema, fields, EXCLUDE


class _LenientSchema(Schema):
    class Meta:
        unknown = EXCLUDE


class RegisterSchema(_LenientSchema):
    # presence is checked by the handler so a missing field maps to 400
    email = fields.String()
    password = fields.String(load_only=True)
    name = fields.String(allow_none=True)


class LoginSchema(_LenientSchema):
    email = fields.String()
    password = fields.String(load_only=True)


class RefreshSchema(_LenientSchema):
    refresh_token = fields.String(data_key="refreshToken")


class UserOutSchema(Schema):
    id = fields.String()
    email = fields.String()
    name = fields.String(allow_none=True)
    role = fields.Method("get_role")
    active = fields.Boolean()
    blocked = fields.Boolean()
    created_at = fields.DateTime(data_key="createdAt")

    def get_role(self, obj):
        role = getattr(obj, "role", None)
        return getattr(role, "value", role)
