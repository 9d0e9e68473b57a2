import pytest

from identharness.errors import ImplementationLoadError
from identharness.interface import load_implementation
from identharness.reference import CosineImplementation, NullImplementation


def test_load_bundled_engines():
    assert isinstance(load_implementation("identharness.reference.null_impl:NullImplementation"), NullImplementation)
    assert isinstance(load_implementation("identharness.reference:CosineImplementation"), CosineImplementation)


@pytest.mark.parametrize(
    "spec",
    [
        "identharness.reference.null_impl",
        "identharness.missing_module:Engine",
        "identharness.reference.null_impl:Missing",
        "identharness.reference.null_impl:TEMPLATE_TEXT",
    ],
)
def test_bad_specs_are_rejected(spec):
    with pytest.raises(ImplementationLoadError):
        load_implementation(spec)


def test_factory_exception_is_wrapped(monkeypatch):
    from identharness.reference import null_impl

    def broken_factory():
        raise OSError("model file missing")

    monkeypatch.setattr(null_impl, "BrokenEngine", broken_factory, raising=False)

    with pytest.raises(ImplementationLoadError, match="model file missing"):
        load_implementation("identharness.reference.null_impl:BrokenEngine")
