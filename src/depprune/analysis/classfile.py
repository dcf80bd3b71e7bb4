"""Class reference extraction from compiled JVM class files.

Parses the binary class-file format directly (constant pool, members,
attributes and bytecode) and collects every class name the class refers to:

- superclass and interfaces
- field and method descriptor types (object types only)
- generic method signatures and declared thrown exceptions
- operands of NEW / ANEWARRAY / CHECKCAST / INSTANCEOF
- owners and descriptor types of field accesses and method invocations

Internal names (``com/example/Foo``) are reported in dotted form.
"""

from __future__ import annotations

import re
import struct
from dataclasses import dataclass, field

MAGIC = 0xCAFEBABE

ACC_PUBLIC = 0x0001
ACC_PRIVATE = 0x0002

# Constant pool tags
CONSTANT_UTF8 = 1
CONSTANT_INTEGER = 3
CONSTANT_FLOAT = 4
CONSTANT_LONG = 5
CONSTANT_DOUBLE = 6
CONSTANT_CLASS = 7
CONSTANT_STRING = 8
CONSTANT_FIELDREF = 9
CONSTANT_METHODREF = 10
CONSTANT_INTERFACE_METHODREF = 11
CONSTANT_NAME_AND_TYPE = 12
CONSTANT_METHOD_HANDLE = 15
CONSTANT_METHOD_TYPE = 16
CONSTANT_DYNAMIC = 17
CONSTANT_INVOKE_DYNAMIC = 18
CONSTANT_MODULE = 19
CONSTANT_PACKAGE = 20

# Payload size in bytes for fixed-size constant pool entries
_CONSTANT_SIZES = {
    CONSTANT_INTEGER: 4,
    CONSTANT_FLOAT: 4,
    CONSTANT_LONG: 8,
    CONSTANT_DOUBLE: 8,
    CONSTANT_CLASS: 2,
    CONSTANT_STRING: 2,
    CONSTANT_FIELDREF: 4,
    CONSTANT_METHODREF: 4,
    CONSTANT_INTERFACE_METHODREF: 4,
    CONSTANT_NAME_AND_TYPE: 4,
    CONSTANT_METHOD_HANDLE: 3,
    CONSTANT_METHOD_TYPE: 2,
    CONSTANT_DYNAMIC: 4,
    CONSTANT_INVOKE_DYNAMIC: 4,
    CONSTANT_MODULE: 2,
    CONSTANT_PACKAGE: 2,
}

# Opcodes whose operand is a constant pool class index
OP_NEW = 0xBB
OP_ANEWARRAY = 0xBD
OP_CHECKCAST = 0xC0
OP_INSTANCEOF = 0xC1
TYPE_INSNS = frozenset({OP_NEW, OP_ANEWARRAY, OP_CHECKCAST, OP_INSTANCEOF})

# GETSTATIC, PUTSTATIC, GETFIELD, PUTFIELD
FIELD_INSNS = frozenset({0xB2, 0xB3, 0xB4, 0xB5})
# INVOKEVIRTUAL, INVOKESPECIAL, INVOKESTATIC, INVOKEINTERFACE
METHOD_INSNS = frozenset({0xB6, 0xB7, 0xB8, 0xB9})

OP_TABLESWITCH = 0xAA
OP_LOOKUPSWITCH = 0xAB
OP_WIDE = 0xC4
OP_IINC = 0x84


def _build_opcode_lengths() -> dict[int, int]:
    """Total instruction length (opcode included) for fixed-size opcodes."""
    lengths: dict[int, int] = {}

    def assign(start: int, end: int, length: int) -> None:
        for op in range(start, end + 1):
            lengths[op] = length

    assign(0x00, 0x0F, 1)  # nop, constants
    assign(0x10, 0x10, 2)  # bipush
    assign(0x11, 0x11, 3)  # sipush
    assign(0x12, 0x12, 2)  # ldc
    assign(0x13, 0x14, 3)  # ldc_w, ldc2_w
    assign(0x15, 0x19, 2)  # xload
    assign(0x1A, 0x35, 1)  # xload_n, xaload
    assign(0x36, 0x3A, 2)  # xstore
    assign(0x3B, 0x83, 1)  # xstore_n, xastore, stack, arithmetic
    assign(0x84, 0x84, 3)  # iinc
    assign(0x85, 0x98, 1)  # conversions, comparisons
    assign(0x99, 0xA8, 3)  # if*, goto, jsr
    assign(0xA9, 0xA9, 2)  # ret
    assign(0xAC, 0xB1, 1)  # returns
    assign(0xB2, 0xB8, 3)  # field access, invokevirtual/special/static
    assign(0xB9, 0xBA, 5)  # invokeinterface, invokedynamic
    assign(0xBB, 0xBB, 3)  # new
    assign(0xBC, 0xBC, 2)  # newarray
    assign(0xBD, 0xBD, 3)  # anewarray
    assign(0xBE, 0xBF, 1)  # arraylength, athrow
    assign(0xC0, 0xC1, 3)  # checkcast, instanceof
    assign(0xC2, 0xC3, 1)  # monitorenter, monitorexit
    assign(0xC5, 0xC5, 4)  # multianewarray
    assign(0xC6, 0xC7, 3)  # ifnull, ifnonnull
    assign(0xC8, 0xC9, 5)  # goto_w, jsr_w
    assign(0xCA, 0xCA, 1)  # breakpoint
    assign(0xFE, 0xFF, 1)  # impdep1, impdep2
    return lengths


OPCODE_LENGTHS = _build_opcode_lengths()

# Class names inside generic signatures, e.g. Lkotlin/Result<Lcom/x/Product;>;
SIGNATURE_CLASS_RE = re.compile(r"L([^;<]+);")


class ClassFileError(ValueError):
    """Raised when bytes are not a well-formed class file."""


@dataclass(frozen=True)
class ClassInfo:
    """What a single class file exposes and references."""

    name: str
    is_externally_visible: bool
    referenced_classes: frozenset[str] = field(default_factory=frozenset)


def decode_modified_utf8(raw: bytes) -> str:
    """Decode the JVM's modified UTF-8 encoding.

    NUL is stored as ``C0 80`` and supplementary characters as surrogate pairs.
    """
    data = raw.replace(b"\xc0\x80", b"\x00")
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        pass
    try:
        return data.decode("utf-8", errors="surrogatepass")
    except UnicodeDecodeError:
        return data.decode("utf-8", errors="replace")


def internal_to_dotted(name: str) -> str:
    return name.replace("/", ".")


def _read_type(descriptor: str, pos: int) -> tuple[str | None, int]:
    """Read one field type at ``pos``.

    Returns the dotted class name for object types (None for primitives and
    arrays) and the position after the type.
    """
    char = descriptor[pos]
    if char == "[":
        while descriptor[pos] == "[":
            pos += 1
        _, pos = _read_type(descriptor, pos)
        return None, pos
    if char == "L":
        end = descriptor.index(";", pos)
        return internal_to_dotted(descriptor[pos + 1:end]), end + 1
    if char in "BCDFIJSZV":
        return None, pos + 1
    raise ValueError(f"Bad descriptor character {char!r} in {descriptor!r}")


def descriptor_types(descriptor: str) -> list[str]:
    """Object types named by a field or method descriptor.

    Primitive and array types are skipped. Malformed descriptors yield an
    empty list.
    """
    types: list[str] = []
    try:
        if descriptor.startswith("("):
            pos = 1
            while descriptor[pos] != ")":
                name, pos = _read_type(descriptor, pos)
                if name:
                    types.append(name)
            name, end = _read_type(descriptor, pos + 1)
            if end != len(descriptor):
                raise ValueError(f"Trailing data in {descriptor!r}")
            if name:
                types.append(name)
        else:
            name, end = _read_type(descriptor, 0)
            if end != len(descriptor):
                raise ValueError(f"Trailing data in {descriptor!r}")
            if name:
                types.append(name)
    except (ValueError, IndexError):
        return []
    return types


def signature_types(signature: str) -> list[str]:
    """Class names found in a generic signature."""
    return [internal_to_dotted(m.group(1)) for m in SIGNATURE_CLASS_RE.finditer(signature)]


class _Reader:
    """Big-endian cursor over class file bytes."""

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.pos = 0

    def _unpack(self, fmt: str, size: int) -> int:
        try:
            (value,) = struct.unpack_from(fmt, self.data, self.pos)
        except struct.error as e:
            raise ClassFileError(f"Truncated class file at offset {self.pos}") from e
        self.pos += size
        return value

    def u1(self) -> int:
        return self._unpack(">B", 1)

    def u2(self) -> int:
        return self._unpack(">H", 2)

    def u4(self) -> int:
        return self._unpack(">I", 4)

    def read(self, size: int) -> bytes:
        end = self.pos + size
        if end > len(self.data):
            raise ClassFileError(f"Truncated class file at offset {self.pos}")
        chunk = self.data[self.pos:end]
        self.pos = end
        return chunk

    def skip(self, size: int) -> None:
        self.read(size)


class ClassFileParser:
    """Parser for one class file.

    The constant pool and header are read on construction; :meth:`references`
    walks the rest of the file.
    """

    def __init__(self, data: bytes) -> None:
        self._reader = _Reader(data)
        self._entries: list[tuple[int, object] | None] = []
        self._parse_header()

    # -- constant pool -------------------------------------------------------

    def _parse_header(self) -> None:
        reader = self._reader
        if reader.u4() != MAGIC:
            raise ClassFileError("Not a class file (bad magic)")
        reader.u2()  # minor version
        reader.u2()  # major version

        count = reader.u2()
        entries: list[tuple[int, object] | None] = [None] * max(count, 1)
        index = 1
        while index < count:
            tag = reader.u1()
            if tag == CONSTANT_UTF8:
                length = reader.u2()
                entries[index] = (tag, decode_modified_utf8(reader.read(length)))
            elif tag in (CONSTANT_CLASS, CONSTANT_STRING, CONSTANT_METHOD_TYPE,
                         CONSTANT_MODULE, CONSTANT_PACKAGE):
                entries[index] = (tag, reader.u2())
            elif tag in (CONSTANT_FIELDREF, CONSTANT_METHODREF,
                         CONSTANT_INTERFACE_METHODREF, CONSTANT_NAME_AND_TYPE):
                entries[index] = (tag, (reader.u2(), reader.u2()))
            elif tag in _CONSTANT_SIZES:
                reader.skip(_CONSTANT_SIZES[tag])
                entries[index] = (tag, None)
            else:
                raise ClassFileError(f"Unknown constant pool tag {tag} at index {index}")

            # Long and double occupy two slots
            index += 2 if tag in (CONSTANT_LONG, CONSTANT_DOUBLE) else 1
        self._entries = entries

        self.access_flags = reader.u2()
        self.this_class = self.class_name(reader.u2())
        super_index = reader.u2()
        self.super_class = self.class_name(super_index) if super_index else None

    def _entry(self, index: int, expected: int) -> object:
        if not 0 < index < len(self._entries) or self._entries[index] is None:
            raise ClassFileError(f"Invalid constant pool index {index}")
        tag, value = self._entries[index]  # type: ignore[misc]
        if tag != expected:
            raise ClassFileError(
                f"Constant pool index {index} has tag {tag}, expected {expected}"
            )
        return value

    def utf8(self, index: int) -> str:
        return self._entry(index, CONSTANT_UTF8)  # type: ignore[return-value]

    def class_name(self, index: int) -> str:
        """Dotted class name of a CONSTANT_Class entry."""
        name_index = self._entry(index, CONSTANT_CLASS)
        return internal_to_dotted(self.utf8(name_index))  # type: ignore[arg-type]

    def member_ref(self, index: int) -> tuple[str, str]:
        """Owner class and descriptor of a field or method reference."""
        if not 0 < index < len(self._entries) or self._entries[index] is None:
            raise ClassFileError(f"Invalid constant pool index {index}")
        tag, value = self._entries[index]  # type: ignore[misc]
        if tag not in (CONSTANT_FIELDREF, CONSTANT_METHODREF, CONSTANT_INTERFACE_METHODREF):
            raise ClassFileError(f"Constant pool index {index} is not a member reference")
        class_index, nat_index = value  # type: ignore[misc]
        _, descriptor_index = self._entry(nat_index, CONSTANT_NAME_AND_TYPE)  # type: ignore[misc]
        return self.class_name(class_index), self.utf8(descriptor_index)

    # -- body ----------------------------------------------------------------

    @property
    def is_externally_visible(self) -> bool:
        """Public, or at least not private (package-private counts)."""
        return bool(self.access_flags & ACC_PUBLIC) or not (self.access_flags & ACC_PRIVATE)

    def references(self) -> set[str]:
        """Walk interfaces, members and code, returning all referenced classes."""
        reader = self._reader
        found: set[str] = set()

        if self.super_class:
            found.add(self.super_class)

        for _ in range(reader.u2()):
            found.add(self.class_name(reader.u2()))

        # Fields: descriptor types only
        for _ in range(reader.u2()):
            reader.u2()  # access flags
            reader.u2()  # name
            found.update(descriptor_types(self.utf8(reader.u2())))
            self._skip_attributes()

        for _ in range(reader.u2()):
            self._read_method(found)

        self._skip_attributes()

        return {name for name in found if name and not name.startswith("[")}

    def _skip_attributes(self) -> None:
        reader = self._reader
        for _ in range(reader.u2()):
            reader.u2()
            reader.skip(reader.u4())

    def _read_method(self, found: set[str]) -> None:
        reader = self._reader
        reader.u2()  # access flags
        reader.u2()  # name
        found.update(descriptor_types(self.utf8(reader.u2())))

        for _ in range(reader.u2()):
            attr_name = self.utf8(reader.u2())
            length = reader.u4()
            body = reader.read(length)

            if attr_name == "Signature":
                found.update(signature_types(self.utf8(_Reader(body).u2())))
            elif attr_name == "Exceptions":
                attr = _Reader(body)
                for _ in range(attr.u2()):
                    found.add(self.class_name(attr.u2()))
            elif attr_name == "Code":
                self._read_code(body, found)

    def _read_code(self, body: bytes, found: set[str]) -> None:
        attr = _Reader(body)
        attr.u2()  # max stack
        attr.u2()  # max locals
        code = attr.read(attr.u4())
        self._scan_instructions(code, found)

    def _scan_instructions(self, code: bytes, found: set[str]) -> None:
        pc = 0
        end = len(code)
        while pc < end:
            opcode = code[pc]

            if opcode in TYPE_INSNS:
                found.add(self.class_name(self._operand_u2(code, pc)))
            elif opcode in FIELD_INSNS or opcode in METHOD_INSNS:
                owner, descriptor = self.member_ref(self._operand_u2(code, pc))
                found.add(owner)
                found.update(descriptor_types(descriptor))

            pc += self._instruction_length(code, pc, opcode)

    @staticmethod
    def _operand_u2(code: bytes, pc: int) -> int:
        if pc + 3 > len(code):
            raise ClassFileError(f"Truncated instruction at pc {pc}")
        return (code[pc + 1] << 8) | code[pc + 2]

    @staticmethod
    def _instruction_length(code: bytes, pc: int, opcode: int) -> int:
        length = OPCODE_LENGTHS.get(opcode)
        if length is not None:
            return length

        if opcode in (OP_TABLESWITCH, OP_LOOKUPSWITCH):
            padding = (4 - (pc + 1) % 4) % 4
            base = pc + 1 + padding
            try:
                if opcode == OP_TABLESWITCH:
                    low, high = struct.unpack_from(">ii", code, base + 4)
                    if high < low:
                        raise ClassFileError(f"Invalid tableswitch bounds at pc {pc}")
                    return 1 + padding + 12 + 4 * (high - low + 1)
                (npairs,) = struct.unpack_from(">i", code, base + 4)
                if npairs < 0:
                    raise ClassFileError(f"Invalid lookupswitch size at pc {pc}")
                return 1 + padding + 8 + 8 * npairs
            except struct.error as e:
                raise ClassFileError(f"Truncated switch at pc {pc}") from e

        if opcode == OP_WIDE:
            if pc + 1 >= len(code):
                raise ClassFileError(f"Truncated wide instruction at pc {pc}")
            return 6 if code[pc + 1] == OP_IINC else 4

        raise ClassFileError(f"Unknown opcode 0x{opcode:02x} at pc {pc}")


def extract_class_info(data: bytes) -> ClassInfo:
    """Parse a class file into its name, visibility and referenced classes.

    Raises:
        ClassFileError: If the bytes are not a well-formed class file.
    """
    parser = ClassFileParser(data)
    try:
        references = parser.references()
    except (ClassFileError, ValueError, IndexError) as e:
        raise ClassFileError(f"Malformed class {parser.this_class}: {e}") from e
    return ClassInfo(
        name=parser.this_class,
        is_externally_visible=parser.is_externally_visible,
        referenced_classes=frozenset(references),
    )


def referenced_classes(data: bytes) -> set[str]:
    """Referenced class names, or an empty set if the file cannot be parsed."""
    try:
        return set(extract_class_info(data).referenced_classes)
    except ClassFileError:
        return set()


def class_name(data: bytes) -> str | None:
    """Dotted name of the class, or None if the header cannot be parsed."""
    try:
        return ClassFileParser(data).this_class
    except ClassFileError:
        return None


def is_externally_visible(data: bytes) -> bool:
    """Visibility from the header only; unparsable input is not visible."""
    try:
        return ClassFileParser(data).is_externally_visible
    except ClassFileError:
        return False
