from marshmallow import Schema, fields


class SessionOutSchema(Schema):
    """Public view of a refresh-token session. The token itself is never dumped."""

    id = fields.String()
    created_at = fields.DateTime(data_key="createdAt")
    expires_at = fields.DateTime(data_key="expiresAt")
    ip_address = fields.String(allow_none=True, data_key="ipAddress")
    user_agent = fields.String(allow_none=True, data_key="userAgent")
