# eureka_codec.py
import json
import xml.etree.ElementTree as ET

from pydantic import ValidationError

from eureka_errors import DecodeError, EmptyResponseError
from models import APPLICATION_JSON, APPLICATION_XML, InstanceRecord

TEXT_KEY = "$"
ATTRIBUTE_PREFIX = "@"


def _to_text(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _append_value(parent: ET.Element, tag: str, value):
    if isinstance(value, list):
        for item in value:
            _append_value(parent, tag, item)
        return

    element = ET.SubElement(parent, tag)
    if isinstance(value, dict):
        _fill_element(element, value)
    else:
        element.text = _to_text(value)


def _fill_element(element: ET.Element, data: dict):
    for key, value in data.items():
        if value is None:
            continue
        if key == TEXT_KEY:
            element.text = _to_text(value)
        elif key.startswith(ATTRIBUTE_PREFIX):
            element.set(key[1:], _to_text(value))
        else:
            _append_value(element, key, value)


def _element_to_value(element: ET.Element):
    """
    Wandelt ein XML-Element in dieselbe Struktur um, die Eureka als JSON liefert:
    Attribute als "@name", Text neben Attributen als "$", wiederholte Tags als Liste.
    """
    children = list(element)

    # leeres Element ist ein leerer String, Text bleibt unverändert
    if not children and not element.attrib:
        return element.text or ""

    result = {f"{ATTRIBUTE_PREFIX}{name}": value for name, value in element.attrib.items()}
    if not children:
        if element.text and element.text.strip():
            result[TEXT_KEY] = element.text
        return result

    for child in children:
        value = _element_to_value(child)
        if child.tag in result:
            existing = result[child.tag]
            if not isinstance(existing, list):
                result[child.tag] = [existing]
            result[child.tag].append(value)
        else:
            result[child.tag] = value
    return result


class EurekaCodec:
    """Serialisiert Registry-Datensätze als JSON oder XML; die Wahl ist fix."""

    def __init__(self, is_json: bool = True):
        self.is_json = is_json

    @property
    def content_type(self) -> str:
        return APPLICATION_JSON if self.is_json else APPLICATION_XML

    def encode_instance(self, instance: InstanceRecord) -> bytes:
        data = instance.model_dump(mode="json", by_alias=True, exclude_none=True)
        if self.is_json:
            return json.dumps({InstanceRecord.envelope: data}).encode("utf-8")

        instance_element = ET.Element(InstanceRecord.envelope)
        _fill_element(instance_element, data)
        return ET.tostring(instance_element, encoding="utf-8", xml_declaration=True)

    def decode(self, body: bytes, record_cls):
        if not body or not body.strip():
            raise EmptyResponseError()

        try:
            if self.is_json:
                data = json.loads(body)
                if isinstance(data, dict) and record_cls.envelope in data:
                    data = data[record_cls.envelope]
            else:
                root = ET.fromstring(body)
                data = _element_to_value(root)
            if data is None or data == "":
                raise EmptyResponseError()
            return record_cls.model_validate(data)
        except (ValueError, ET.ParseError, ValidationError) as e:
            raise DecodeError(f"Antwort konnte nicht als {record_cls.__name__} gelesen werden: {e}") from e
