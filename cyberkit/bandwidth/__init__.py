"""Personal bandwidth, the spent-bandwidth window, credit pricing and bandwidth queries."""