import pint

# the same unit registry instance should be shared across everything
# don't raise warnings when redefining units
u = pint.UnitRegistry(on_redefinition='ignore')

#: Multiply a pixel area in square meters by this to get hectares.
SQUARE_METERS_TO_HECTARES = (1 * u.meter ** 2).to(u.hectare).magnitude
