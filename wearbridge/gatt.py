"""GATT UUIDs for the services and characteristics we subscribe to."""

BASE_UUID = "0000{:04x}-0000-1000-8000-00805f9b34fb"


def uuid16(short):
    return BASE_UUID.format(short)


# Heart Rate
HR_SERVICE = uuid16(0x180D)
HR_MEASUREMENT = uuid16(0x2A37)

# Battery
BATTERY_SERVICE = uuid16(0x180F)
BATTERY_LEVEL = uuid16(0x2A19)

# Pulse Oximeter
PLX_SERVICE = uuid16(0x1822)
PLX_SPOT_CHECK = uuid16(0x2A5E)
PLX_CONTINUOUS = uuid16(0x2A5F)

# Health Thermometer
THERMOMETER_SERVICE = uuid16(0x1809)
TEMPERATURE_MEASUREMENT = uuid16(0x2A1C)

# Vendor stream rides on the Nordic UART Service
VENDOR_SERVICE = "6e400001-b5a3-f393-e0a9-e50e24dcca9e"
VENDOR_NOTIFY = "6e400003-b5a3-f393-e0a9-e50e24dcca9e"  # device -> host

CHARACTERISTICS = {
    "heart_rate": HR_MEASUREMENT,
    "battery": BATTERY_LEVEL,
    "plx_spot": PLX_SPOT_CHECK,
    "plx_continuous": PLX_CONTINUOUS,
    "temperature": TEMPERATURE_MEASUREMENT,
    "vendor": VENDOR_NOTIFY,
}


def normalize(uuid):
    return str(uuid).lower()
