"""Default device fleet loaded at startup."""

from core.models import Device, DeviceCategory


def create_sample_home() -> list[Device]:
    """A small home: thermostat, water heater, kitchen lights and a washer."""
    return [
        Device(
            id="hvac_001",
            name="Living Room Thermostat",
            category=DeviceCategory.HVAC,
            location="Living Room",
            is_on=True,
            current_power=2800.0,
            todays_usage=24.5,
            todays_cost=4.90,
            target_temp=72.0,
        ),
        Device(
            id="water_heater_001",
            name="Water Heater",
            category=DeviceCategory.WATER_HEATER,
            location="Basement",
            is_on=True,
            current_power=3200.0,
            todays_usage=18.2,
            todays_cost=3.64,
        ),
        Device(
            id="lighting_001",
            name="Kitchen Lights",
            category=DeviceCategory.LIGHTING,
            location="Kitchen",
            is_on=True,
            current_power=180.0,
            todays_usage=2.1,
            todays_cost=0.42,
            brightness=100,
        ),
        Device(
            id="washer_001",
            name="Washing Machine",
            category=DeviceCategory.APPLIANCE,
            location="Laundry Room",
            is_on=False,
            current_power=0.0,
            todays_usage=3.5,
            todays_cost=0.70,
        ),
    ]

