from django import forms


class JsonForm(forms.Form):
    """A form bound from a decoded JSON object.

    ``aliases`` maps JSON keys (camelCase, as the storefront client sends them)
    to field names. Keys that are neither a field nor an alias make the form
    invalid unless listed in ``ignored_keys``. With ``partial=True`` only the
    fields present in the payload are validated, which is what PATCH handlers
    want.
    """

    aliases: dict = {}
    ignored_keys: tuple = ()

    def __init__(self, payload, partial=False, **kwargs):
        self.unknown_keys = []
        self.payload_is_object = isinstance(payload, dict)
        data = {}
        for key, value in (payload if self.payload_is_object else {}).items():
            name = self.aliases.get(key, key)
            if name in self.base_fields:
                data[name] = value
            elif key in self.ignored_keys:
                continue
            else:
                self.unknown_keys.append(key)
        super().__init__(data=data, **kwargs)
        self.partial = partial
        if partial:
            for name in list(self.fields):
                if name not in data:
                    del self.fields[name]

    def clean(self):
        cleaned = super().clean()
        if not self.payload_is_object:
            raise forms.ValidationError("Expected a JSON object")
        if self.unknown_keys:
            raise forms.ValidationError(f"Unknown fields: {', '.join(sorted(self.unknown_keys))}")
        return cleaned
