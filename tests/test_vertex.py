import pytest

from surfelmap.vertex import SIZE, Surfel, decode_color, encode_color


def test_record_is_three_float4():
    assert SIZE == 48
    assert len(Surfel().pack()) == SIZE


def test_round_trip():
    surfel = Surfel(
        position=(1.5, -2.25, 3.0),
        confidence=4.0,
        color=encode_color(10, 20, 30),
        init_time=5.0,
        timestamp=6.0,
        normal=(0.0, 0.5, -0.5),
        radius=0.125,
    )
    assert Surfel.unpack(surfel.pack()) == surfel


def test_unused_slot_is_zero():
    data = Surfel(color=1.0, init_time=2.0).pack()
    assert data[20:24] == b"\x00\x00\x00\x00"


def test_unpack_wrong_length():
    with pytest.raises(ValueError):
        Surfel.unpack(b"\x00" * (SIZE - 1))


def test_encode_red_is_high_byte():
    assert encode_color(255, 0, 0) == 16711680.0


@pytest.mark.parametrize("rgb", [(0, 0, 0), (255, 255, 255), (1, 2, 3), (200, 0, 17)])
def test_color_round_trip(rgb):
    assert decode_color(encode_color(*rgb)) == rgb


def test_color_survives_float32():
    rgb = (255, 254, 253)
    surfel = Surfel(color=encode_color(*rgb))
    assert decode_color(Surfel.unpack(surfel.pack()).color) == rgb


def test_encode_out_of_range():
    with pytest.raises(ValueError):
        encode_color(256, 0, 0)


def test_decode_out_of_range():
    with pytest.raises(ValueError):
        decode_color(-1.0)